"""HTTP routes. Mounted under /api/v1 by conekt.main."""
