"""
Prompt directory (public).

- Categories with live approved counts, newest submissions strip
- Paginated, filterable listing of approved prompts
- Prompt detail pages and usage counters
- JSON endpoints under /api for the same data
"""
