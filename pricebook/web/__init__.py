"""HTTP surface for Pricebook."""
