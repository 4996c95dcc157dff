"""notesync -- two-party replication of a hierarchical note database."""

__version__ = "0.3.0"
