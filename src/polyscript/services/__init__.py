"""Polyscript services: script executor, result notifier and script store."""
