def register(client, email="alice@example.com", password="secret123", name="Alice", dob="1990-05-02"):
    resp = client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": password, "dateOfBirth": dob},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
