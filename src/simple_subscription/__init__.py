"""Subscription web service bootstrap with asynchronous mail dispatch.

This package provides:

- A bounded outbound mail queue drained by a single consume loop
- Delivery failures reported on a separate, non-blocking error queue
- Graceful shutdown that waits for tracked background work before
  stopping the loop and closing the mailer channels
- FastAPI HTTP surface, SQL adapters and Redis-backed sessions
- Prometheus metrics for monitoring

Example:
    Basic usage::

        from simple_subscription.config_loader import load_settings
        from simple_subscription.app import Application

        application = await Application.build(load_settings())
        await application.run()
"""
