"""
Client-side cart and wishlist sync for CozyBerries.

Keeps a local copy of a shopper's collection usable at all times and
converges it with the storefront service: a merge on sign-in, then debounced
pushes of local changes.
"""
