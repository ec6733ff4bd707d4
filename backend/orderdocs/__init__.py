"""
Order document extraction engine

Turns positioned PDF text into validated order line items and splits
combined label+invoice pages into separate PDFs.
"""

__version__ = "1.0.0"
