"""Command-line interface (`flow-ix`)."""
