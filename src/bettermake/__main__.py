from bettermake.cli import cli

cli()
