from .lexer import Line, Token, TokenType, lex
from .parser import Parser, ParseError, ErrorType, parse, build_ast
from .model import Job, Jobs
from .runner import Executor, BuildError, CommandFailed, execute, load_buildfile

__all__ = [
    "Line", "Token", "TokenType", "lex",
    "Parser", "ParseError", "ErrorType", "parse", "build_ast",
    "Job", "Jobs",
    "Executor", "BuildError", "CommandFailed", "execute", "load_buildfile",
]
