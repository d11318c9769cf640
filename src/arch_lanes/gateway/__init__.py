"""Provider gateway for the three allow-listed models.

Why not an SDK per provider?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Each provider is reached through one JSON POST. The parts that matter here
are the per-provider parameter contracts (fixed temperature, which token
limit field name, where the system prompt goes) and turning every failure
into a single ``ProviderError`` the queue can classify. Three vendor SDKs
would each bring their own retry loop, exception tree, and response
objects; a thin binding per provider over one ``httpx.Client`` keeps retry
decisions in the job queue and makes the bindings trivially fakeable with
``httpx.MockTransport``.
"""
