"""Planetary tile generator — Core Engine Package.

Height field sampling, shadow raymarching, albedo shading passes, mip
downsampling, and tile mesh/index generation.
"""
