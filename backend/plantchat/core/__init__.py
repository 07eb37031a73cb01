"""Core configuration, constants, enums and exceptions."""
