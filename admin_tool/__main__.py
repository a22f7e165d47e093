"""
Entry point for running the admin tool as a module and for the
``tuneshift`` console script.

Usage: python -m admin_tool
"""
# Gevent must patch before any other imports that use socket/threading.
from gevent import monkey
monkey.patch_all()

from .cli import cli


def main():
    cli()


if __name__ == '__main__':
    main()
