import asyncio

from app.services.bot import ChatBot


def chat(db_path, phone, *texts):
    async def run():
        bot = ChatBot(db_path)
        for text in texts:
            await bot.handle(phone, text)
    asyncio.run(run())


def test_sessions_require_token(client):
    assert client.get("/api/sessions").status_code == 401


def test_session_detail_shows_cart(client, auth_headers, db_path, seeded):
    chat(db_path, "15550009", "menu", "1", "1", "add kale 2")

    sessions = client.get("/api/sessions", headers=auth_headers).json()
    assert [(s["phone"], s["state"], s["item_count"]) for s in sessions] == [("15550009", "category", 3)]

    detail = client.get("/api/sessions/15550009", headers=auth_headers).json()
    assert detail["context"]["category_id"] == seeded["Citrus"]
    assert [(i["product_name"], i["quantity"]) for i in detail["items"]] == [
        ("Orange Juice", 1),
        ("Kale Kick", 2),
    ]
    assert detail["total"] == 14.0


def test_reset_session(client, auth_headers, db_path, seeded):
    chat(db_path, "15550009", "add orange")

    assert client.delete("/api/sessions/15550009", headers=auth_headers).status_code == 204
    assert client.get("/api/sessions/15550009", headers=auth_headers).status_code == 404
    assert client.delete("/api/sessions/15550009", headers=auth_headers).status_code == 404
