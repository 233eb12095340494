"""Backend clients for homework analysis."""
