from tests.helpers import auth_headers


def test_default_room_labels(client, operator):
    body = client.get("/rooms/", headers=auth_headers(operator)).json()
    assert body["number_of_rooms"] == 10
    assert body["rooms"][0] == {"number": 1, "name": "Room 1"}
    assert len(body["rooms"]) == 10


def test_rename_and_search(client, operator):
    r = client.put("/rooms/names", json={"room_names": [" Sea View ", "", "Garden Suite"]}, headers=auth_headers(operator))
    assert r.status_code == 200
    names = [room["name"] for room in r.json()["rooms"][:4]]
    assert names == ["Sea View", "Room 2", "Garden Suite", "Room 4"]

    found = client.get("/rooms/search", params={"q": "garden"}, headers=auth_headers(operator)).json()
    assert found == [{"number": 3, "name": "Garden Suite"}]
    found = client.get("/rooms/search", params={"q": "2"}, headers=auth_headers(operator)).json()
    assert found == [{"number": 2, "name": "Room 2"}]


def test_more_names_than_rooms_is_rejected(client, other_operator):
    r = client.put("/rooms/names", json={"room_names": ["a"] * 6}, headers=auth_headers(other_operator))
    assert r.status_code == 400
