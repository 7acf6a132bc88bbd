"""Built-in CLI commands for konfigurator."""
