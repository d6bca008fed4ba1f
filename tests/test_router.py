"""Test channel map resolution and loading."""

from hypothesis import given
from hypothesis import strategies as st

from matterbridge.gateway.router import ChannelMap, ChannelMapping

_irc_names = st.text(alphabet="abcdefghij-", min_size=1, max_size=8).map(lambda s: f"#{s}")
_remote_names = st.text(alphabet="abcdefghij-", min_size=1, max_size=8).map(lambda s: f"mm-{s}")


def _map(*pairs, default_irc="#main", default_remote="town-square"):
    return ChannelMap(
        [ChannelMapping(irc_channel=i, remote_channel=r) for i, r in pairs],
        default_irc=default_irc,
        default_remote=default_remote,
    )


class TestChannelMap:
    def test_resolves_mapped_pair_both_ways(self):
        # Arrange
        cmap = _map(("#dev", "team-dev"))

        # Act / Assert
        assert cmap.resolve_remote("#dev") == "team-dev"
        assert cmap.resolve_irc("team-dev") == "#dev"

    def test_unmapped_falls_back_to_defaults(self):
        cmap = _map(("#dev", "team-dev"))
        assert cmap.resolve_remote("#random") == "town-square"
        assert cmap.resolve_irc("off-topic") == "#main"

    def test_duplicates_are_last_wins(self):
        # Arrange
        cmap = _map(("#dev", "first"), ("#dev", "second"))

        # Assert
        assert cmap.resolve_remote("#dev") == "second"
        assert cmap.resolve_irc("second") == "#dev"

    def test_channel_lists_put_default_first_without_duplicates(self):
        cmap = _map(("#dev", "team-dev"), ("#main", "town-square"), ("#ops", "ops"))
        assert cmap.irc_channels() == ["#main", "#dev", "#ops"]
        assert cmap.remote_channels() == ["town-square", "team-dev", "ops"]

    def test_all_mappings_keeps_order(self):
        cmap = _map(("#b", "b"), ("#a", "a"))
        assert [m.irc_channel for m in cmap.all_mappings()] == ["#b", "#a"]


class TestFromConfig:
    def test_loads_list(self):
        # Arrange
        raw = [{"irc": "#dev", "mattermost": "team-dev"}, {"irc": "#ops", "mattermost": "ops"}]

        # Act
        cmap = ChannelMap.from_config(raw, default_irc="#main", default_remote="town-square")

        # Assert
        assert len(cmap.all_mappings()) == 2
        assert cmap.resolve_remote("#ops") == "ops"
        assert cmap.default_irc == "#main"
        assert cmap.default_remote == "town-square"

    def test_skips_malformed_items(self):
        raw = ["not-a-dict", {"irc": "#dev"}, {"mattermost": "x"}, {"irc": "#ok", "mattermost": "ok"}]
        cmap = ChannelMap.from_config(raw, default_irc="#main", default_remote="town-square")
        assert [m.irc_channel for m in cmap.all_mappings()] == ["#ok"]

    def test_non_list_routes_everything_to_defaults(self):
        cmap = ChannelMap.from_config(None, default_irc="#main", default_remote="town-square")
        assert cmap.all_mappings() == []
        assert cmap.resolve_remote("#dev") == "town-square"


class TestChannelMapProperties:
    @given(st.lists(st.tuples(_irc_names, _remote_names), max_size=10, unique_by=(lambda p: p[0], lambda p: p[1])))
    def test_every_mapping_resolves_both_ways(self, pairs):
        # Arrange
        cmap = _map(*pairs)

        # Assert
        for irc_channel, remote_channel in pairs:
            assert cmap.resolve_remote(irc_channel) == remote_channel
            assert cmap.resolve_irc(remote_channel) == irc_channel

    @given(st.dictionaries(_irc_names, _remote_names, max_size=10), _irc_names, _remote_names)
    def test_unknown_channels_resolve_to_defaults(self, pairs, irc_probe, remote_probe):
        cmap = _map(*pairs.items())
        if irc_probe not in pairs:
            assert cmap.resolve_remote(irc_probe) == "town-square"
        if remote_probe not in pairs.values():
            assert cmap.resolve_irc(remote_probe) == "#main"
