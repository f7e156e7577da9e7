"""
User record service.

Routers call the application service in `users_api.modules.users`, which
talks to a `UserStore` (DynamoDB or in-memory) rather than to boto3 directly.
"""
