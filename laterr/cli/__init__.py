"""laterr admin command-line interface."""
