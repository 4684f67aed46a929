from __future__ import annotations

import asyncio

from django.core.management.base import BaseCommand
from django.core.management.base import CommandParser

from medsync.appointments.lifecycle import Role
from medsync.client.api import AppointmentsClient
from medsync.client.channel import PushChannelManager
from medsync.client.dispatcher import ReconciliationDispatcher
from medsync.client.registry import appointment_registry
from medsync.client.session import StaticTokenProvider
from medsync.client.settings import ClientSettings
from medsync.client.store import AppointmentStore


class Command(BaseCommand):
    help = (
        "Connect to a running server as one viewer and print the appointment "
        "list every time the push channel makes it change"
    )

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument("--token", required=True, help="JWT access token")
        parser.add_argument(
            "--role",
            choices=[r.value for r in Role],
            default=Role.PATIENT.value,
            help="Which list to follow (?role= on the read API)",
        )
        parser.add_argument(
            "--server",
            dest="server_url",
            help="Server base URL (default: MEDSYNC_SERVER_URL or localhost:8000)",
        )
        parser.add_argument(
            "--duration",
            type=float,
            default=0,
            help="Stop after this many seconds (0 runs until interrupted)",
        )

    def handle(self, *args, **options) -> None:
        settings = ClientSettings.from_env()
        server_url = options.get("server_url") or settings.server_url
        try:
            asyncio.run(
                self._watch(
                    server_url,
                    settings,
                    options["token"],
                    options["role"],
                    options["duration"],
                )
            )
        except KeyboardInterrupt:
            self.stdout.write("Stopped.")

    async def _watch(self, server_url, settings, token, role, duration) -> None:
        tokens = StaticTokenProvider(token)
        store = AppointmentStore()
        registry = appointment_registry()
        manager = PushChannelManager(
            server_url,
            tokens,
            socketio_path=settings.socketio_path,
            handshake_timeout=settings.handshake_timeout,
            on_auth_rejected=lambda _channel: self.stderr.write(
                self.style.ERROR("Server rejected the token; refresh it and retry.")
            ),
        )

        async with AppointmentsClient(server_url, tokens) as client:
            dispatcher = ReconciliationDispatcher(
                registry, client, store, role, debounce=settings.refetch_debounce
            )
            store.subscribe(self._print_store)
            dispatcher.start()

            channel = manager.get_channel()
            if channel is None:
                self.stderr.write(self.style.ERROR("No token; nothing to watch."))
                return
            registry.bind(channel)
            channel.on("connect", channel.emit_test_ping)
            try:
                if duration:
                    await asyncio.sleep(duration)
                else:
                    await asyncio.Event().wait()
            finally:
                dispatcher.stop()
                await manager.teardown()

    def _print_store(self, store: AppointmentStore) -> None:
        if store.error is not None:
            self.stderr.write(self.style.WARNING(f"Refetch failed: {store.error}"))
            return
        self.stdout.write(f"-- {len(store)} appointment(s), v{store.version}")
        for appt in store.appointments:
            when = f"{appt.date} {appt.time}" if appt.date and appt.time else "TBD"
            self.stdout.write(
                f"  #{appt.id} {appt.display_status:<22} {when}  "
                f"{appt.patient_name} -> {appt.doctor_name}"
            )
