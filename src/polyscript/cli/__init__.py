"""Polyscript command-line interface."""
