"""Unit tests for the entity resolution cache."""

from structlog.testing import capture_logs

from report_ingest.reports.resolver import DealerEntry, DirectorySnapshot, UserEntry


class TestDealerResolution:
    """Test dealer lookups."""

    def test_by_name_ignoring_honorific_and_punctuation(self, memory_cache):
        assert memory_cache.resolve_dealer("Sharma & Co") == 1
        assert memory_cache.resolve_dealer("M/S SHARMA AND CO") is None

    def test_by_code(self, memory_cache):
        assert memory_cache.resolve_dealer("d002") == 2

    def test_blank(self, memory_cache):
        assert memory_cache.resolve_dealer(None) is None
        assert memory_cache.resolve_dealer("  ") is None

    def test_duplicate_key_keeps_lowest_id(self):
        snapshot = DirectorySnapshot.build(
            [DealerEntry(id=9, dealer_party_name="Twin"), DealerEntry(id=4, dealer_party_name="TWIN")],
            [],
            loaded_at=None
        )
        assert snapshot.dealer_map["TWIN"] == 4


class TestUserResolution:
    """Test the user matching ladder."""

    def test_exact(self, memory_cache):
        assert memory_cache.resolve_user("Ravi Kumar") == 10
        assert memory_cache.resolve_user("  ravi   kumar ") == 10

    def test_substring_prefers_longest_name(self, memory_cache):
        assert memory_cache.resolve_user("Ravi Kumar Singh ji") == 12

    def test_token_subset(self, memory_cache):
        assert memory_cache.resolve_user("Sharma Anil Ji") == 11

    def test_single_token(self, memory_cache):
        assert memory_cache.resolve_user("Priya D.") == 13
        assert memory_cache.resolve_user("Kumar") == 12

    def test_unknown(self, memory_cache):
        assert memory_cache.resolve_user("Deepak Verma") is None
        assert memory_cache.resolve_user(None) is None

    def test_users_without_names_skipped(self):
        snapshot = DirectorySnapshot.build([], [UserEntry(id=1), UserEntry(id=2, first_name="Asha")], loaded_at=None)
        assert [u.id for u in snapshot.users] == [2]


class TestCacheRefresh:
    """Test TTL refresh and snapshot replacement."""

    def test_loads_lazily_once_within_ttl(self, memory_cache, static_directory, clock):
        assert static_directory.loads == 0

        memory_cache.resolve_dealer("Gupta Traders")
        assert static_directory.loads == 1

        clock.advance(299)
        memory_cache.resolve_user("Ravi Kumar")
        assert static_directory.loads == 1

        clock.advance(1)
        memory_cache.resolve_user("Ravi Kumar")
        assert static_directory.loads == 2

    def test_refresh_swaps_snapshot(self, memory_cache, static_directory):
        old = memory_cache.refresh()
        static_directory.dealers.append(DealerEntry(id=4, dealer_party_name="New Dealer"))

        with capture_logs() as logs:
            new = memory_cache.refresh(force=True)

        assert new is memory_cache.snapshot
        assert new is not old
        assert "NEWDEALER" not in old.dealer_map
        assert new.dealer_map["NEWDEALER"] == 4
        assert any(entry["event"] == "entity_cache_refreshed" for entry in logs)

    def test_fresh_snapshot_not_reloaded(self, memory_cache, static_directory):
        first = memory_cache.refresh()
        second = memory_cache.refresh()
        assert first is second
        assert static_directory.loads == 1


class TestSqlDirectory:
    """Test reading the directory tables."""

    def test_resolves_from_database(self, db_cache):
        assert db_cache.resolve_dealer("Verma Cement Agency") == 3
        assert db_cache.resolve_dealer("D001") == 1
        assert db_cache.resolve_user("Anil Sharma") == 11
        assert len(db_cache.snapshot.users) == 4
