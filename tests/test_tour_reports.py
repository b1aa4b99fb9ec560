import os
import unittest

from fastapi import HTTPException

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("API_RATE_LIMIT_ENABLED", "false")

from app.core.security import create_reset_token, hash_reset_token
from app.services.slugs import slugify
from app.services.tour_reports import haversine, parse_lat_lng, parse_unit


class GeoHelperTests(unittest.TestCase):
    def test_parse_lat_lng(self):
        self.assertEqual(parse_lat_lng("34.111745,-118.113491"), (34.111745, -118.113491))
        self.assertEqual(parse_lat_lng(" 34.1 , -118.1 "), (34.1, -118.1))

    def test_parse_lat_lng_rejects_garbage(self):
        for raw in ("34.1", "a,b", "34.1,-118.1,5", "95,10"):
            with self.subTest(raw=raw):
                with self.assertRaises(HTTPException) as ctx:
                    parse_lat_lng(raw)
                self.assertEqual(ctx.exception.status_code, 400)

    def test_parse_unit(self):
        self.assertEqual(parse_unit("mi"), "mi")
        with self.assertRaises(HTTPException):
            parse_unit("yd")

    def test_haversine_known_distance(self):
        # Los Angeles to Miami is roughly 3760 km / 2340 mi.
        km = haversine(34.111745, -118.113491, 25.774772, -80.185942, "km")
        mi = haversine(34.111745, -118.113491, 25.774772, -80.185942, "mi")
        self.assertTrue(3700 < km < 3800)
        self.assertTrue(2300 < mi < 2380)
        self.assertEqual(haversine(10, 10, 10, 10), 0.0)


class SlugAndTokenTests(unittest.TestCase):
    def test_slugify(self):
        self.assertEqual(slugify("The Forest Hiker"), "the-forest-hiker")
        self.assertEqual(slugify("  Café  Tour!! 2 "), "cafe-tour-2")
        self.assertEqual(slugify("!!!", "tour"), "tour")

    def test_reset_token_digest(self):
        token, digest = create_reset_token()
        self.assertEqual(len(token), 64)
        self.assertEqual(digest, hash_reset_token(token))
        self.assertNotEqual(digest, token)


if __name__ == "__main__":
    unittest.main()
