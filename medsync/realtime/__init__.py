"""Realtime infrastructure (Socket.IO push server, presence).

One socket server carries appointments, notifications and chat presence so
each browser tab needs a single connection.
"""
