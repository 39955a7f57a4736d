"""
Listing data layer service package.
"""
