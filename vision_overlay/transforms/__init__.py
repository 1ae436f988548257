"""
Frame-to-view coordinate transforms.
"""

from .viewport import ViewportTransformer, transform_point
