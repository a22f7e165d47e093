import pytest

from shared.models import Track


def make_track(owner="alice", name="Song", uploaded_at="2024-01-01T00:00:00+00:00", **kwargs):
    track_id = Track.generate_id()
    fields = dict(
        id=track_id, owner=owner, name=name, artist="Artist", album="Album",
        duration_ms=180000, storage_key=f"{owner}/processed/{track_id}.mp3",
        original_key=f"{owner}/original/{track_id}.mp3", file_size=1000,
        pitch_factor=432 / 440, uploaded_at=uploaded_at,
    )
    fields.update(kwargs)
    return Track(**fields)


def test_add_and_get_track(database):
    track = database.add_track(make_track(year=1999, cover_key="alice/covers/song.jpg"))
    stored = database.get_track(track.id)
    assert stored == track


def test_get_track_hides_other_owners(database):
    track = database.add_track(make_track(owner="alice"))
    assert database.get_track(track.id, owner="alice") is not None
    assert database.get_track(track.id, owner="bob") is None
    assert database.get_track("no-such-id") is None


def test_list_tracks_newest_first_and_paged(database):
    for day in range(1, 6):
        database.add_track(make_track(name=f"Day {day}", uploaded_at=f"2024-01-0{day}T00:00:00+00:00"))
    database.add_track(make_track(owner="bob"))

    first = database.list_tracks("alice", page=0, page_size=2)
    second = database.list_tracks("alice", page=1, page_size=2)
    last = database.list_tracks("alice", page=2, page_size=2)
    assert [t.name for t in first] == ["Day 5", "Day 4"]
    assert [t.name for t in second] == ["Day 3", "Day 2"]
    assert [t.name for t in last] == ["Day 1"]
    assert database.list_tracks("alice", page=3, page_size=2) == []
    assert database.count_tracks("alice") == 5
    assert database.count_tracks("bob") == 1


@pytest.mark.parametrize("page,page_size", [(-1, 10), (0, 0)])
def test_list_tracks_rejects_bad_paging(database, page, page_size):
    with pytest.raises(ValueError):
        database.list_tracks("alice", page=page, page_size=page_size)


def test_delete_track_is_owner_scoped(database):
    track = database.add_track(make_track())
    assert database.delete_track(track.id, "bob") is False
    assert database.delete_track(track.id, "alice") is True
    assert database.get_track(track.id) is None


def test_playlist_lifecycle(database):
    first = database.add_track(make_track(name="First"))
    second = database.add_track(make_track(name="Second"))
    playlist = database.create_playlist("alice", "Evening")

    assert database.add_to_playlist(playlist.id, second.id, "alice")
    assert database.add_to_playlist(playlist.id, first.id, "alice")
    assert database.add_to_playlist(playlist.id, second.id, "alice")  # already there

    stored = database.get_playlist(playlist.id, "alice")
    assert stored.name == "Evening"
    assert stored.track_ids == [second.id, first.id]
    assert [p.id for p in database.list_playlists("alice")] == [playlist.id]

    assert database.remove_from_playlist(playlist.id, second.id, "alice")
    assert not database.remove_from_playlist(playlist.id, second.id, "alice")
    assert database.get_playlist(playlist.id, "alice").track_ids == [first.id]

    assert database.delete_playlist(playlist.id, "alice")
    assert database.get_playlist(playlist.id, "alice") is None


def test_playlists_are_owner_scoped(database):
    alice_track = database.add_track(make_track(owner="alice"))
    bob_track = database.add_track(make_track(owner="bob"))
    playlist = database.create_playlist("alice", "Mine")

    assert database.get_playlist(playlist.id, "bob") is None
    assert database.list_playlists("bob") == []
    assert not database.add_to_playlist(playlist.id, alice_track.id, "bob")
    assert not database.add_to_playlist(playlist.id, bob_track.id, "alice")
    assert not database.delete_playlist(playlist.id, "bob")


def test_deleting_track_removes_playlist_entries(database):
    track = database.add_track(make_track())
    playlist = database.create_playlist("alice", "Mix")
    database.add_to_playlist(playlist.id, track.id, "alice")
    database.delete_track(track.id, "alice")
    assert database.get_playlist(playlist.id, "alice").track_ids == []


def test_track_from_dict_ignores_unknown_keys():
    data = make_track().to_dict()
    data["legacy_field"] = "ignored"
    assert Track.from_dict(data).name == "Song"
