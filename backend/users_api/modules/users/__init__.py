"""
User module.

A user is `{id, name, email, createdAt, updatedAt}`. `id` is minted at
creation and never changes; `email` is stored trimmed + lower-cased and is
unique across stored users.
"""
