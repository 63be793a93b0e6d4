"""Client document export pipeline: PDF, PNG, DOCX, HTML and print exports."""

__version__ = "1.0.0"
