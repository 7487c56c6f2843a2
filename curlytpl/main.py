# curlytpl/main.py
"""Main entry point for the curlytpl CLI application."""
from curlytpl.cli.interface import main_cli_group


def entrypoint():
    """Function to be called by the script defined in pyproject.toml."""
    main_cli_group(prog_name="curlytpl")

if __name__ == '__main__':
    entrypoint()
