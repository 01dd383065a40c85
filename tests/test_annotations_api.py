from __future__ import annotations

import uuid


def test_create_annotation_applies_style_defaults(client, owner, upload_pdf):
    document = upload_pdf(owner)
    response = client.post(
        "/annotations",
        headers=owner.headers,
        json={
            "documentId": document["id"],
            "page": 3,
            "type": "text",
            "content": {"text": "Typo here", "coordinates": {"x": 1.5, "y": 2}, "unknown": "ignored"},
            "tags": ["review", "review", "copy"],
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Annotation created successfully"

    annotation = body["annotation"]
    assert annotation["documentId"] == document["id"]
    assert annotation["page"] == 3
    assert annotation["type"] == "text"
    assert annotation["isPrivate"] is False
    assert annotation["isResolved"] is False
    assert annotation["tags"] == ["review", "copy"]
    assert annotation["replies"] == []
    assert annotation["replyCount"] == 0
    assert annotation["user"]["name"] == "Olivia Owner"
    assert annotation["content"] == {
        "text": "Typo here",
        "coordinates": {"x": 1.5, "y": 2.0},
        "style": {"color": "#FFFF00", "opacity": 0.5, "strokeWidth": 2.0, "fontSize": 14.0, "fontFamily": "Arial"},
    }


def test_create_annotation_requires_auth(client, owner, upload_pdf):
    document = upload_pdf(owner, isPublic=True)
    response = client.post(
        "/annotations",
        json={"documentId": document["id"], "page": 1, "type": "highlight", "content": {}},
    )
    assert response.status_code == 401


def test_create_annotation_validation(client, owner, upload_pdf):
    document = upload_pdf(owner)
    base = {"documentId": document["id"], "page": 1, "type": "highlight", "content": {}}

    for override in (
        {"page": 0},
        {"type": "scribble"},
        {"content": {"text": "x" * 1001}},
        {"content": {"style": {"color": "yellow"}}},
        {"content": {"style": {"opacity": 1.5}}},
        {"content": {"style": {"strokeWidth": 0}}},
        {"content": {"style": {"strokeWidth": 11}}},
        {"content": {"style": {"fontSize": 7}}},
        {"content": {"style": {"fontSize": 73}}},
        {"content": {"coordinates": {"x": 1}}},
        {"documentId": "not-a-uuid"},
    ):
        response = client.post("/annotations", headers=owner.headers, json={**base, **override})
        assert response.status_code == 400, override
        assert response.json()["success"] is False


def test_create_annotation_accepts_style_bounds_and_short_hex(client, owner, upload_pdf):
    document = upload_pdf(owner)
    style = {"color": "#abc", "strokeWidth": 10, "fontSize": 8}
    response = client.post(
        "/annotations",
        headers=owner.headers,
        json={"documentId": document["id"], "page": 1, "type": "text", "content": {"style": style}},
    )
    assert response.status_code == 201
    stored = response.json()["annotation"]["content"]["style"]
    assert stored["color"] == "#abc"
    assert stored["strokeWidth"] == 10
    assert stored["fontSize"] == 8


def test_create_annotation_needs_document_access(client, owner, other_user, upload_pdf):
    private_doc = upload_pdf(owner)
    public_doc = upload_pdf(owner, isPublic=True)
    payload = {"page": 1, "type": "circle", "content": {}}

    denied = client.post("/annotations", headers=other_user.headers, json={**payload, "documentId": private_doc["id"]})
    assert denied.status_code == 403
    assert denied.json()["message"] == "Not authorized to annotate this PDF"

    allowed = client.post("/annotations", headers=other_user.headers, json={**payload, "documentId": public_doc["id"]})
    assert allowed.status_code == 201

    missing = client.post("/annotations", headers=owner.headers, json={**payload, "documentId": str(uuid.uuid4())})
    assert missing.status_code == 404


def test_list_for_document_respects_privacy(client, owner, other_user, upload_pdf, create_annotation):
    document = upload_pdf(owner, isPublic=True)
    create_annotation(owner, document["id"], page=1)
    create_annotation(owner, document["id"], page=2, isPrivate=True)
    create_annotation(other_user, document["id"], page=2, type="arrow")

    as_owner = client.get(f"/annotations/document/{document['id']}", headers=owner.headers).json()
    assert as_owner["count"] == 3

    as_reader = client.get(f"/annotations/document/{document['id']}", headers=other_user.headers).json()
    assert as_reader["count"] == 2
    assert all(item["isPrivate"] is False for item in as_reader["items"])

    anonymous = client.get(f"/annotations/document/{document['id']}").json()
    assert anonymous["count"] == 2

    page_two = client.get(f"/annotations/document/{document['id']}", headers=owner.headers, params={"page": 2}).json()
    assert page_two["count"] == 2

    arrows = client.get(
        f"/annotations/document/{document['id']}", headers=owner.headers, params={"type": "arrow"}
    ).json()
    assert [item["type"] for item in arrows["items"]] == ["arrow"]


def test_list_for_private_document_is_forbidden(client, owner, other_user, upload_pdf):
    document = upload_pdf(owner)
    response = client.get(f"/annotations/document/{document['id']}", headers=other_user.headers)
    assert response.status_code == 403
    assert response.json()["message"] == "Not authorized to view annotations for this PDF"


def test_list_mine_is_paginated_and_filtered(client, owner, other_user, upload_pdf, create_annotation):
    document = upload_pdf(owner, title="Shared doc", isPublic=True)
    first = create_annotation(other_user, document["id"])
    create_annotation(other_user, document["id"], type="freehand")
    create_annotation(owner, document["id"])

    client.put(f"/annotations/{first['id']}", headers=other_user.headers, json={"isResolved": True})

    body = client.get("/annotations/mine", headers=other_user.headers, params={"limit": 1}).json()
    assert body["total"] == 2
    assert body["count"] == 1
    assert body["pages"] == 2
    assert body["items"][0]["document"]["title"] == "Shared doc"

    resolved = client.get("/annotations/mine", headers=other_user.headers, params={"isResolved": "true"}).json()
    assert [item["id"] for item in resolved["items"]] == [first["id"]]

    assert client.get("/annotations/mine").status_code == 401


def test_get_annotation_visibility(client, owner, other_user, upload_pdf, create_annotation):
    document = upload_pdf(owner, isPublic=True)
    private_note = create_annotation(owner, document["id"], isPrivate=True)
    public_note = create_annotation(owner, document["id"])

    assert client.get(f"/annotations/{private_note['id']}", headers=owner.headers).status_code == 200
    assert client.get(f"/annotations/{private_note['id']}", headers=other_user.headers).status_code == 403
    assert client.get(f"/annotations/{public_note['id']}").status_code == 200

    missing = client.get(f"/annotations/{uuid.uuid4()}")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Annotation not found"
    assert client.get("/annotations/nope").json()["message"] == "Invalid annotation id"


def test_update_merges_content_shallowly(client, owner, upload_pdf, create_annotation):
    document = upload_pdf(owner)
    annotation = create_annotation(owner, document["id"])

    response = client.put(
        f"/annotations/{annotation['id']}",
        headers=owner.headers,
        json={"content": {"text": "updated"}, "isResolved": True, "tags": ["done"]},
    )
    assert response.status_code == 200
    updated = response.json()["annotation"]
    assert updated["content"]["text"] == "updated"
    assert updated["content"]["coordinates"] == annotation["content"]["coordinates"]
    assert updated["content"]["style"] == annotation["content"]["style"]
    assert updated["isResolved"] is True
    assert updated["tags"] == ["done"]


def test_update_rejects_invalid_content_patch(client, owner, upload_pdf, create_annotation):
    document = upload_pdf(owner)
    annotation = create_annotation(owner, document["id"])

    response = client.put(
        f"/annotations/{annotation['id']}",
        headers=owner.headers,
        json={"content": {"style": {"color": "not-a-color"}}},
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"].startswith("content.style")


def test_update_is_author_only(client, owner, other_user, admin_user, upload_pdf, create_annotation):
    document = upload_pdf(owner, isPublic=True)
    annotation = create_annotation(other_user, document["id"])

    for user in (owner, admin_user):
        response = client.put(f"/annotations/{annotation['id']}", headers=user.headers, json={"isResolved": True})
        assert response.status_code == 403


def test_delete_annotation_by_author_or_admin(client, owner, other_user, admin_user, upload_pdf, create_annotation):
    document = upload_pdf(owner, isPublic=True)
    by_reader = create_annotation(other_user, document["id"])
    by_owner = create_annotation(owner, document["id"])

    assert client.delete(f"/annotations/{by_reader['id']}", headers=owner.headers).status_code == 403

    response = client.delete(f"/annotations/{by_reader['id']}", headers=other_user.headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Annotation deleted successfully"}

    assert client.delete(f"/annotations/{by_owner['id']}", headers=admin_user.headers).status_code == 200
    assert client.get(f"/annotations/{by_owner['id']}", headers=owner.headers).status_code == 404


def test_replies_are_appended_in_order(client, owner, other_user, upload_pdf, create_annotation):
    document = upload_pdf(owner, isPublic=True)
    annotation = create_annotation(owner, document["id"])

    for user, text in ((other_user, "  first  "), (owner, "second"), (other_user, "third")):
        response = client.post(f"/annotations/{annotation['id']}/replies", headers=user.headers, json={"text": text})
        assert response.status_code == 201

    body = response.json()["annotation"]
    assert [reply["text"] for reply in body["replies"]] == ["first", "second", "third"]
    assert body["replyCount"] == 3
    assert body["replies"][0]["user"]["name"] == "Rene Reader"
    assert body["updatedAt"] >= annotation["updatedAt"]


def test_reply_text_is_validated(client, owner, upload_pdf, create_annotation):
    document = upload_pdf(owner)
    annotation = create_annotation(owner, document["id"])

    blank = client.post(f"/annotations/{annotation['id']}/replies", headers=owner.headers, json={"text": "   "})
    assert blank.status_code == 400
    assert blank.json()["message"] == "Reply text is required"

    missing = client.post(f"/annotations/{annotation['id']}/replies", headers=owner.headers)
    assert missing.status_code == 400

    too_long = client.post(f"/annotations/{annotation['id']}/replies", headers=owner.headers, json={"text": "x" * 501})
    assert too_long.status_code == 400


def test_reply_to_private_annotation_is_denied(client, owner, other_user, upload_pdf, create_annotation):
    document = upload_pdf(owner, isPublic=True)
    annotation = create_annotation(owner, document["id"], isPrivate=True)

    response = client.post(
        f"/annotations/{annotation['id']}/replies", headers=other_user.headers, json={"text": "hello"}
    )
    assert response.status_code == 403
    assert response.json()["message"] == "Not authorized to reply to this annotation"


def test_reply_on_private_document_is_denied(client, owner, other_user, upload_pdf, create_annotation):
    document = upload_pdf(owner)
    annotation = create_annotation(owner, document["id"])
    response = client.post(
        f"/annotations/{annotation['id']}/replies", headers=other_user.headers, json={"text": "hello"}
    )
    assert response.status_code == 403


def test_delete_reply_permissions(client, owner, other_user, make_user, upload_pdf, create_annotation):
    bystander = make_user("bystander@example.com")
    document = upload_pdf(owner, isPublic=True)
    annotation = create_annotation(other_user, document["id"])

    replies = []
    for user in (owner, bystander, owner):
        response = client.post(f"/annotations/{annotation['id']}/replies", headers=user.headers, json={"text": "hi"})
        replies = response.json()["annotation"]["replies"]
    owner_reply, bystander_reply, last_reply = replies

    denied = client.delete(
        f"/annotations/{annotation['id']}/replies/{owner_reply['id']}", headers=bystander.headers
    )
    assert denied.status_code == 403
    assert denied.json()["message"] == "Not authorized to delete this reply"

    # reply author who is not the annotation author
    own = client.delete(f"/annotations/{annotation['id']}/replies/{bystander_reply['id']}", headers=bystander.headers)
    assert own.status_code == 200
    assert [reply["id"] for reply in own.json()["annotation"]["replies"]] == [owner_reply["id"], last_reply["id"]]

    # annotation author removing someone else's reply
    by_annotation_author = client.delete(
        f"/annotations/{annotation['id']}/replies/{owner_reply['id']}", headers=other_user.headers
    )
    assert by_annotation_author.status_code == 200
    assert by_annotation_author.json()["annotation"]["replyCount"] == 1

    missing = client.delete(f"/annotations/{annotation['id']}/replies/{uuid.uuid4()}", headers=owner.headers)
    assert missing.status_code == 404
    assert missing.json()["message"] == "Reply not found"


def test_content_round_trips_with_server_defaults(client, owner, upload_pdf):
    document = upload_pdf(owner)
    created = client.post(
        "/annotations",
        headers=owner.headers,
        json={
            "documentId": document["id"],
            "page": 1,
            "type": "rectangle",
            "content": {"text": "note", "coordinates": {"x": 10, "y": 20}},
        },
    ).json()["annotation"]

    fetched = client.get(f"/annotations/{created['id']}", headers=owner.headers).json()["annotation"]
    assert fetched["content"]["text"] == "note"
    assert fetched["content"]["coordinates"] == {"x": 10, "y": 20}
    assert fetched["content"]["style"]["color"] == "#FFFF00"
    assert fetched["content"]["style"]["opacity"] == 0.5
