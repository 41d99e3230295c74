"""Qt front end for EPUB Typer."""
