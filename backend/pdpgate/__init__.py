"""PDP Gateway: HTTP front end for proof-of-data-possession storage"""

__version__ = "0.1.0"
