"""saladict-sync CLI.

Usage:
    saladict-sync config set --url URL --user USER   Check server and save config
    saladict-sync upload                             Push the local notebook
    saladict-sync download                           Pull a newer remote notebook
    saladict-sync watch                              Sync on the configured interval
"""

from saladict_sync.cli.main import app, main

__all__ = ["app", "main"]
