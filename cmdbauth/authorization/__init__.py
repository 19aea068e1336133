"""Authorization for configuration resources.

The package consists of:
- Policy engine interface: what cmdbauth needs from the external policy service
- Policy engines: in-process implementations of that interface
- Authorization manager: projects entities into resources and routes them to the engine
- Action and ResourceType enums, resource descriptors and grants
"""
