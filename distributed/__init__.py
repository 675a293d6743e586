"""Network transport, configuration and command line for the billing roles."""
