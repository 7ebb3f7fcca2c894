"""
Admin moderation (under /admin).

- Review queue: approve, reject, feature, delete
- Category management
- Every decision lands in the audit trail
"""
