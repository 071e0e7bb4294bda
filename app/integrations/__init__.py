"""app.integrations: external service gateway modules.

All outbound HTTP calls to the platform directories and the event bus go
through a gateway in this package, never via bare `requests` calls in
services or blueprints.  Every call is:
  - Authenticated (M2M token injected by the gateway when configured)
  - Bounded by DIRECTORY_TIMEOUT_SECONDS
  - Retried once on connection errors and 5xx responses

Current gateways:
  platform_gateway.ChallengeDirectory: challenge detail / bulk lookups
  platform_gateway.ResourceDirectory:  challenge resources and role names
  platform_gateway.EventPublisher:     bus events (review.action.completed)
"""
