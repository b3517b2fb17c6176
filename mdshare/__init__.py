"""MDShare: markdown document sharing API."""
