from medsync.realtime.presence import PresenceRegistry


class TestPresenceRegistry:
    def setup_method(self):
        self.registry = PresenceRegistry()

    def test_first_socket_brings_user_online(self):
        assert self.registry.add(7, "a") is True
        assert self.registry.add(7, "b") is False
        assert self.registry.is_online(7)
        assert self.registry.online_count == 1

    def test_user_stays_online_until_last_tab_closes(self):
        self.registry.add(7, "a")
        self.registry.add(7, "b")
        assert self.registry.remove("a") == (7, False)
        assert self.registry.is_online(7)
        assert self.registry.remove("b") == (7, True)
        assert not self.registry.is_online(7)

    def test_unknown_sid(self):
        assert self.registry.remove("ghost") == (None, False)

    def test_online_status_keys_are_strings(self):
        self.registry.add(3, "s")
        assert self.registry.online_status([3, "4", "bogus"]) == {
            "3": True,
            "4": False,
            "bogus": False,
        }
