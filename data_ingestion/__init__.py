"""Planetary tile generator — Data Ingestion Package.

Source image decoding and synthetic albedo/elevation rasters.
"""
