"""Bundled characterization factor sets and their loader."""
