"""Real-time synchronization layer run by a connected clinic viewer.

A viewer builds a :class:`~medsync.client.channel.PushChannelManager`, binds
event registries to its channel, and lets a
:class:`~medsync.client.dispatcher.ReconciliationDispatcher` keep an
:class:`~medsync.client.store.AppointmentStore` in step with the server by
re-reading the authoritative list whenever anything changes.
"""
