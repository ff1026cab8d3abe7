"""CozyBerries storefront service."""
