import unittest
from unittest import mock

import requests

from babynames_pipeline.crm_client import HubSpotClient, HubSpotConfig
from babynames_pipeline.exceptions import AuthError, RateLimitError, TransportError, ValidationRejection
from babynames_pipeline.models import Record, Sex
from babynames_pipeline.sync import to_contact


def response(status, body=None, headers=None, text=""):
    resp = mock.Mock(spec=requests.Response)
    resp.status_code = status
    resp.headers = headers or {}
    resp.text = text
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


class TestHubSpotClient(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock(spec=requests.Session)
        self.session.headers = {}
        self.client = HubSpotClient(HubSpotConfig(access_token="tok", base_url="https://api.example.test/"), session=self.session)
        self.inputs = [to_contact(Record("John", Sex.M)), to_contact(Record("Ann", Sex.F))]

    def test_posts_inputs_with_bearer_token(self):
        self.session.post.return_value = response(200, {"status": "COMPLETE"})
        self.assertEqual(self.client.batch_upsert(self.inputs), {"status": "COMPLETE"})

        self.assertEqual(self.session.headers["Authorization"], "Bearer tok")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://api.example.test/crm/v3/objects/contacts/batch/upsert")
        self.assertEqual([i["id"] for i in kwargs["json"]["inputs"]], ["john.m@babynamesdemo.com", "ann.f@babynamesdemo.com"])

    def test_401_is_auth_error(self):
        self.session.post.return_value = response(401, {"message": "expired"})
        with self.assertRaises(AuthError):
            self.client.batch_upsert(self.inputs)

    def test_429_carries_retry_after(self):
        self.session.post.return_value = response(429, {"message": "slow"}, headers={"Retry-After": "3"})
        with self.assertRaises(RateLimitError) as ctx:
            self.client.batch_upsert(self.inputs)
        self.assertEqual(ctx.exception.retry_after, 3.0)

    def test_429_without_hint(self):
        self.session.post.return_value = response(429, {"message": "slow"})
        with self.assertRaises(RateLimitError) as ctx:
            self.client.batch_upsert(self.inputs)
        self.assertIsNone(ctx.exception.retry_after)

    def test_400_is_validation_rejection_with_detail(self):
        body = {"status": "error", "message": "Property values were not valid"}
        self.session.post.return_value = response(400, body)
        with self.assertRaises(ValidationRejection) as ctx:
            self.client.batch_upsert(self.inputs)
        self.assertEqual(ctx.exception.detail, body)
        self.assertIn("Property values were not valid", str(ctx.exception))
        self.assertEqual(ctx.exception.payload, [c.to_payload() for c in self.inputs])

    def test_other_status_is_transport_error(self):
        self.session.post.return_value = response(503, text="unavailable")
        with self.assertRaises(TransportError) as ctx:
            self.client.batch_upsert(self.inputs)
        self.assertEqual(ctx.exception.status, 503)

    def test_connection_failure_is_transport_error(self):
        self.session.post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(TransportError):
            self.client.batch_upsert(self.inputs)

    def test_rejects_oversized_batch(self):
        big = [to_contact(Record(f"N{i}", Sex.F)) for i in range(101)]
        with self.assertRaises(ValueError):
            self.client.batch_upsert(big)
        self.session.post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
