"""UserStore implementations (DynamoDB, in-memory)."""
