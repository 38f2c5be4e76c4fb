"""lucius-build subcommands."""
