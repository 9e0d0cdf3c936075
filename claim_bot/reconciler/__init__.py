"""Claim lifecycle reconciler: projection, resolver, grace period, takeover."""
