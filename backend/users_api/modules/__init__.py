"""
Bounded-context modules.

Routers should call application services within modules rather than directly
invoking repositories or infrastructure adapters.
"""
