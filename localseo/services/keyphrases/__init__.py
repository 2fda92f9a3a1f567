"""Keyphrase classification and search-demand aggregation."""
