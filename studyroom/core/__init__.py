"""Core domain logic: page types, rasterizer seam, blank-page heuristic, exceptions."""
