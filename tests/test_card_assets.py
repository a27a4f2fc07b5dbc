from app.core.config import settings

from conftest import png_bytes


async def upload_pdf(client, card_id, name="notes.pdf", description="Course notes", position=None):
    data = {"description": description}
    if position is not None:
        data["position"] = position
    resp = await client.post(
        f"/cards/{card_id}/files",
        files={"file": (name, b"%PDF-1.4 test", "application/pdf")},
        data=data,
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


async def current_files(client, card_id):
    cards = (await client.get("/cards/admin")).json()["result"]
    return [f["href"] for f in next(c for c in cards if c["id"] == card_id)["fichiers"]]


async def test_background_upload_keeps_a_single_pair(client, admin, new_card, storage):
    card = await new_card()

    first = await client.post(
        f"/cards/{card['id']}/bg/upload", files={"file": ("first.png", png_bytes(), "image/png")}
    )
    assert first.status_code == 200
    first_name = first.json()["fileName"]
    assert first_name.startswith("first_") and first_name.endswith(".png")
    assert storage.keys_under("algebra/tag1/") == sorted([
        f"algebra/tag1/{first_name}",
        f"algebra/tag1/{first_name[:-4]}Blur.png",
    ])

    second = await client.post(
        f"/cards/{card['id']}/bg/upload", files={"file": ("second.png", png_bytes(color="blue"), "image/png")}
    )

    assert second.status_code == 200
    body = second.json()
    name = body["fileName"]
    assert body["result"]["bg"] == name
    assert body["publicUrl"].endswith(f"algebra/tag1/{name}")
    assert storage.keys_under("algebra/tag1/") == sorted([
        f"algebra/tag1/{name}",
        f"algebra/tag1/{name[:-4]}Blur.png",
    ])
    assert f"algebra/tag1/{name}" in storage.public


async def test_background_upload_checks_extension(client, admin, new_card, storage):
    card = await new_card()

    resp = await client.post(
        f"/cards/{card['id']}/bg/upload", files={"file": ("evil.exe", b"MZ", "application/octet-stream")}
    )

    assert resp.status_code == 400
    assert storage.objects == {}


async def test_background_upload_tolerates_failed_cleanup(client, admin, new_card, storage, monkeypatch):
    card = await new_card()
    await client.post(f"/cards/{card['id']}/bg/upload", files={"file": ("first.png", png_bytes(), "image/png")})

    async def broken(key):
        raise RuntimeError("storage down")

    monkeypatch.setattr(storage, "delete", broken)

    resp = await client.post(
        f"/cards/{card['id']}/bg/upload", files={"file": ("second.png", png_bytes(), "image/png")}
    )

    assert resp.status_code == 200
    assert resp.json()["result"]["bg"].startswith("second_")


async def test_file_upload_inserts_at_position(client, admin, new_card, storage):
    card = await new_card()
    a = (await upload_pdf(client, card["id"], "a.pdf"))["fileName"]
    b = (await upload_pdf(client, card["id"], "b.pdf", position="start"))["fileName"]
    c = (await upload_pdf(client, card["id"], "c.pdf", position="0"))["fileName"]

    assert await current_files(client, card["id"]) == [b, c, a]
    assert f"algebra/tag1/{a}" in storage.objects


async def test_file_upload_requires_description_and_known_extension(client, admin, new_card):
    card = await new_card()

    no_label = await client.post(
        f"/cards/{card['id']}/files", files={"file": ("a.pdf", b"x", "application/pdf")}, data={}
    )
    bad_ext = await client.post(
        f"/cards/{card['id']}/files",
        files={"file": ("a.exe", b"x", "application/octet-stream")},
        data={"description": "binary"},
    )

    assert no_label.status_code == 400
    assert bad_ext.status_code == 400


async def test_remove_file_deletes_object(client, admin, new_card, storage):
    card = await new_card()
    name = (await upload_pdf(client, card["id"]))["fileName"]

    resp = await client.request("DELETE", f"/cards/{card['id']}/files", json={"href": name})

    assert resp.status_code == 200
    assert resp.json()["result"]["fichiers"] == []
    assert f"algebra/tag1/{name}" not in storage.objects

    again = await client.request("DELETE", f"/cards/{card['id']}/files", json={"href": name})
    assert again.status_code == 404
    unsafe = await client.request("DELETE", f"/cards/{card['id']}/files", json={"href": "../x.pdf"})
    assert unsafe.status_code == 400


async def test_patch_file(client, admin, new_card):
    card = await new_card()
    name = (await upload_pdf(client, card["id"]))["fileName"]

    resp = await client.patch(
        f"/cards/{card['id']}/files", json={"href": name, "txt": "Renamed", "visible": "false", "hover": "tip"}
    )

    assert resp.status_code == 200
    entry = resp.json()["result"]["fichiers"][0]
    assert (entry["txt"], entry["visible"], entry["hover"]) == ("Renamed", False, "tip")
    assert (await client.patch(f"/cards/{card['id']}/files", json={"href": name})).status_code == 400
    assert (await client.patch(f"/cards/{card['id']}/files", json={"href": name, "txt": " "})).status_code == 400


async def test_reorder_requires_exact_permutation(client, admin, new_card):
    card = await new_card()
    a = (await upload_pdf(client, card["id"], "a.pdf"))["fileName"]
    b = (await upload_pdf(client, card["id"], "b.pdf"))["fileName"]
    url = f"/cards/{card['id']}/files/reorder"

    for order in ([a], [a, a], [a, b, "ghost.pdf"], [a, "ghost.pdf"], [a, "../b.pdf"]):
        resp = await client.patch(url, json={"hrefs": order})
        assert resp.status_code == 400, order
        assert await current_files(client, card["id"]) == [a, b]

    resp = await client.patch(url, json={"order": [b, a]})
    assert resp.status_code == 200
    assert await current_files(client, card["id"]) == [b, a]


async def test_sign_then_confirm(client, admin, new_card, storage):
    card = await new_card()

    signed = await client.post(
        f"/cards/{card['id']}/files/sign", json={"name": "Cours 1.pdf", "type": "application/pdf", "size": 1200}
    )

    assert signed.status_code == 200
    result = signed.json()["result"]
    assert result["objectPath"] == f"algebra/tag1/{result['fileName']}"
    assert result["fileName"].startswith("Cours_1_")
    assert "minutes=15" in result["url"]

    missing = await client.post(
        f"/cards/{card['id']}/files/confirm", json={"fileName": result["fileName"], "description": "Cours"}
    )
    assert missing.status_code == 404

    storage.objects[result["objectPath"]] = b"%PDF"
    confirmed = await client.post(
        f"/cards/{card['id']}/files/confirm",
        json={"fileName": result["fileName"], "txt": "Cours", "position": "start"},
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["result"]["fichiers"][0]["href"] == result["fileName"]
    assert result["objectPath"] in storage.public

    duplicate = await client.post(
        f"/cards/{card['id']}/files/confirm", json={"fileName": result["fileName"], "description": "Cours"}
    )
    assert duplicate.status_code == 409


async def test_sign_rejects_bad_size_and_extension(client, admin, new_card):
    card = await new_card()
    url = f"/cards/{card['id']}/files/sign"

    assert (await client.post(url, json={"name": "a.pdf", "size": 0})).status_code == 400
    assert (await client.post(url, json={"name": "a.pdf", "size": settings.MAX_FILE_BYTES + 1})).status_code == 400
    assert (await client.post(url, json={"name": "a.exe", "size": 10})).status_code == 400


async def test_confirm_deletes_oversized_object(client, admin, new_card, storage, monkeypatch):
    card = await new_card()
    storage.objects["algebra/tag1/big.pdf"] = b"0123456789"
    monkeypatch.setattr(settings, "MAX_FILE_BYTES", 5)

    resp = await client.post(
        f"/cards/{card['id']}/files/confirm", json={"fileName": "big.pdf", "description": "Too big"}
    )

    assert resp.status_code == 400
    assert "algebra/tag1/big.pdf" not in storage.objects
    assert await current_files(client, card["id"]) == []


async def test_video_list_operations(client, admin, new_card):
    card = await new_card()
    url = f"/cards/{card['id']}/video"

    await client.post(url, json={})
    await client.post(url, json={"position": "start"})
    patched = await client.patch(url, json={"index": 1, "txt": " Intro ", "href": "https://youtu.be/x"})

    assert patched.status_code == 200
    assert patched.json()["result"]["video"] == [
        {"txt": "", "href": ""},
        {"txt": "Intro", "href": "https://youtu.be/x"},
    ]
    removed = await client.request("DELETE", url, json={"index": 0})
    assert removed.json()["result"]["video"] == [{"txt": "Intro", "href": "https://youtu.be/x"}]
    assert (await client.request("DELETE", url, json={"index": 5})).status_code == 404
    assert (await client.patch(url, json={"index": 0})).status_code == 400


async def test_background_upload_enforces_size_limit(client, admin, new_card, storage, monkeypatch):
    card = await new_card()
    image = png_bytes()
    monkeypatch.setattr(settings, "MAX_FILE_BYTES", len(image) - 1)

    resp = await client.post(f"/cards/{card['id']}/bg/upload", files={"file": ("big.png", image, "image/png")})

    assert resp.status_code == 400
    assert storage.objects == {}
    cards = (await client.get("/cards/admin")).json()["result"]
    assert cards[0]["bg"] == ""
