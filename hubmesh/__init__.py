"""hubmesh — self-registering chat hub nodes.

Every node heartbeats its own record into a shared TTL store (Redis);
any node can answer ``/nodes`` with the currently active set.

Quickstart::

    from hubmesh.config import Settings
    from hubmesh.stores import store_from_settings
    from hubmesh.registry import DiscoveryReader, RegistryWriter

    settings = Settings.from_env()
    store = store_from_settings(settings)
    writer = RegistryWriter(store, settings)
    await writer.start()
    result = await DiscoveryReader(store, settings, writer.node_id).discover()
"""

__version__ = "1.0.0"
