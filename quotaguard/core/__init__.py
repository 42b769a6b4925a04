"""Core Application Layer: use cases on top of the governor.

Contains the generation service and the command handler invoked by the CLI.
"""
