import unittest

from bson import ObjectId

from tests.base import ApiTestCase


class ChargeRegistryTests(ApiTestCase):

    def add_rule(self, vehicle_type, charge):
        response = self.client.post("/charge-control", json={"vehicle_type": vehicle_type, "charge": charge})
        self.assertEqual(response.status_code, 201)
        return response.json()["id"]

    def test_rate_for_category(self):
        self.add_rule("car", 0.5)

        self.assertEqual(self.client.get("/charge-control/rate/car").json(), {"charge": 0.5})
        self.assertEqual(self.client.get("/charge-control/rate/boat").status_code, 404)

    def test_negative_rate_is_rejected(self):
        response = self.client.post("/charge-control", json={"vehicle_type": "car", "charge": -1})
        self.assertEqual(response.status_code, 400)

    def test_list_and_vehicle_types(self):
        self.add_rule("car", 0.5)
        self.add_rule("bike", 0.2)
        self.add_rule("car", 0.6)

        self.assertEqual(len(self.client.get("/charge-control").json()), 3)
        self.assertEqual(self.client.get("/vehicle-types").json(), ["bike", "car"])

    def test_update_rule(self):
        rule_id = self.add_rule("car", 0.5)

        response = self.client.patch(f"/charge-control/{rule_id}", json={"charge": 0.75})

        self.assertEqual(response.json(), {"modified_count": 1})
        self.assertEqual(self.client.get("/charge-control/rate/car").json(), {"charge": 0.75})

    def test_update_requires_a_field(self):
        rule_id = self.add_rule("car", 0.5)
        self.assertEqual(self.client.patch(f"/charge-control/{rule_id}", json={}).status_code, 400)

    def test_update_and_delete_unknown_rule(self):
        self.add_rule("car", 0.5)

        self.assertEqual(self.client.patch(f"/charge-control/{ObjectId()}", json={"charge": 1}).status_code, 404)
        self.assertEqual(self.client.delete(f"/charge-control/{ObjectId()}").status_code, 404)
        self.assertEqual(self.db["charges"].count_documents({}), 1)

    def test_delete_rule(self):
        rule_id = self.add_rule("car", 0.5)
        self.assertEqual(self.client.delete(f"/charge-control/{rule_id}").status_code, 200)
        self.assertEqual(self.client.get("/vehicle-types").json(), [])


if __name__ == "__main__":
    unittest.main()
