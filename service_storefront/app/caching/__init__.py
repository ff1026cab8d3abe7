"""
Storefront caching package.

Cache-aside reads with stale-while-revalidate, best-effort write-path
invalidation, and the background executor that carries the detached cache
work. The remote cache is never authoritative: every operation here may fail
without affecting correctness.
"""
