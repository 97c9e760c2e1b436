import pytest
import httpx

from factories import ollama_reply
from groceries.dependencies import get_grocery_parser
from groceries.main import app
from groceries.models.history import HistoryRecord
from groceries.models.list_entry import ListEntry


@pytest.mark.e2e
class TestGroceriesAPI:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/").json()["status"] == "running"

    def test_parse_end_to_end(self, client, catalog, mock_ollama):
        mock_ollama.generate.return_value = ollama_reply(
            [{"article": "Pain complet", "quantity": 1, "category": "Boulangerie"}]
        )

        response = client.post("/api/groceries/parse", json={"text": "2 pommes\nPain compplet"})

        assert response.status_code == 200
        data = response.json()
        assert data["stats"] == {"total": 2, "from_cache": 1, "from_ai": 1}
        assert [(i["product_name"], i["quantity"], i["status"]) for i in data["items"]] == [
            ("Pommes", 2, "pending"),
            ("Pain complet", 1, "pending"),
        ]
        assert {i["batch_id"] for i in data["items"]} == {data["batch_id"]}

    def test_parse_rejects_blank_text(self, client, catalog, mock_ollama):
        response = client.post("/api/groceries/parse", json={"text": "  \n "})

        assert response.status_code == 422
        mock_ollama.generate.assert_not_called()

    def test_parse_parser_failure(self, client, test_db, catalog, mock_ollama):
        mock_ollama.generate.side_effect = httpx.ConnectError("refused")

        response = client.post("/api/groceries/parse", json={"text": "lait\nbanannes"})

        assert response.status_code == 502
        assert response.json()["detail"]["kind"] == "network"
        assert test_db.query(ListEntry).count() == 0

    def test_parse_parser_not_configured(self, client, catalog, offline_parser):
        app.dependency_overrides[get_grocery_parser] = lambda: offline_parser

        response = client.post("/api/groceries/parse", json={"text": "banannes"})

        assert response.status_code == 503
        assert response.json()["detail"]["kind"] == "not_initialized"

    def test_list_grouped(self, client, catalog):
        client.post("/api/groceries", json={"product_id": catalog["pain"].id})
        client.post("/api/groceries", json={"product_id": catalog["pommes"].id, "quantity": 3})

        data = client.get("/api/groceries").json()

        assert list(data["grouped"]) == ["Fruits et légumes", "Boulangerie"]
        assert data["grouped"]["Fruits et légumes"][0]["quantity"] == 3
        assert data["category_info"]["Boulangerie"]["icon"] == "🥖"
        assert data["found_items"] == []

    def test_add_unknown_product(self, client, catalog):
        response = client.post("/api/groceries", json={"product_id": 9999})

        assert response.status_code == 404

    def test_add_zero_quantity(self, client, catalog):
        response = client.post("/api/groceries", json={"product_id": catalog["pain"].id, "quantity": 0})

        assert response.status_code == 422

    def test_edit_and_status(self, client, catalog):
        entry = client.post("/api/groceries", json={"product_id": catalog["lait"].id}).json()

        response = client.put(f"/api/groceries/{entry['id']}", json={"quantity": 2, "note": "demi-écrémé"})
        assert response.json()["quantity"] == 2
        assert response.json()["note"] == "demi-écrémé"

        response = client.patch(f"/api/groceries/{entry['id']}/status", json={"status": "selected"})
        assert response.json()["status"] == "selected"

        response = client.patch(f"/api/groceries/{entry['id']}/status", json={"status": "bought"})
        assert response.status_code == 422

        response = client.patch("/api/groceries/9999/status", json={"status": "found"})
        assert response.status_code == 404

    def test_delete_entry_and_batch(self, client, catalog):
        single = client.post("/api/groceries", json={"product_id": catalog["lait"].id}).json()
        batch = client.post("/api/groceries/parse", json={"text": "pain\npommes"}).json()

        assert client.delete(f"/api/groceries/batch/{batch['batch_id']}").json() == {"message": "Deleted 2 items"}
        assert client.delete(f"/api/groceries/{single['id']}").status_code == 200
        assert client.delete(f"/api/groceries/{single['id']}").status_code == 404
        assert client.get("/api/groceries").json()["all_items"] == []

    def test_shopping_trip(self, client, test_db, catalog):
        ids = {}
        for key in ("pommes", "tomates", "lait", "pain"):
            ids[key] = client.post("/api/groceries", json={"product_id": catalog[key].id}).json()["id"]
        for key, status in (("pommes", "found"), ("tomates", "found"), ("lait", "not_found"), ("pain", "selected")):
            client.patch(f"/api/groceries/{ids[key]}/status", json={"status": status})

        response = client.post("/api/groceries/complete-shopping")

        assert response.status_code == 200
        data = response.json()
        assert (data["archived_count"], data["found_count"], data["not_found_count"]) == (3, 2, 1)
        assert test_db.query(HistoryRecord).filter(HistoryRecord.session_id == data["session_id"]).count() == 3

        assert client.post("/api/groceries/reset-selection").json() == {"message": "Reset 1 selected items"}
        remaining = client.get("/api/groceries").json()["all_items"]
        assert [(i["product_name"], i["status"]) for i in remaining] == [("Pain", "pending")]

    def test_clear_found(self, client, catalog):
        entry = client.post("/api/groceries", json={"product_id": catalog["lait"].id}).json()
        client.patch(f"/api/groceries/{entry['id']}/status", json={"status": "found"})

        assert client.delete("/api/groceries/status/found").json() == {"message": "Deleted 1 found items"}

    def test_ai_stats(self, client, catalog, mock_ollama):
        mock_ollama.generate.return_value = ollama_reply([{"article": "Bananes", "category": "Fruits et légumes"}])
        client.post("/api/groceries/parse", json={"text": "banannes"})

        data = client.get("/api/groceries/ai-stats").json()

        assert data["live"]["is_initialized"] is True
        assert data["live"]["total_requests_all_time"] == 1
        assert data["logged"]["hours_back"] == 24
