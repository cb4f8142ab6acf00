from ddt import ddt, data, unpack
from unittest import TestCase

from PIL import Image

from cannon.image_cache import ImageLruCache, estimate_footprint, image_cache_key


@ddt
class TestEstimateFootprint(TestCase):
    @data(
        ('RGB', 10, 10, 300),
        ('RGBA', 10, 10, 400),
        ('L', 10, 10, 100),
        ('I', 10, 10, 400),
        ('F', 2, 3, 24),
    )
    @unpack
    def test_estimate_footprint(self, mode, width, height, expected):
        self.assertEqual(expected, estimate_footprint(Image.new(mode, (width, height))))


@ddt
class TestImageCacheKey(TestCase):
    @data(
        ('http://h/a.png', 0, 0, 'http://h/a.png'),
        ('http://h/a.png', 100, 0, '#W100#H0http://h/a.png'),
        ('http://h/a.png', 100, 50, '#W100#H50http://h/a.png'),
    )
    @unpack
    def test_image_cache_key(self, url, width, height, expected):
        self.assertEqual(expected, image_cache_key(url, width, height))


class TestImageLruCache(TestCase):
    def test_get_miss(self):
        self.assertIsNone(ImageLruCache().get('nothing'))

    def test_put_then_get(self):
        cache = ImageLruCache()
        image = Image.new('RGB', (4, 4))

        cache.put('a', image)

        self.assertIs(image, cache.get('a'))
        self.assertEqual(1, cache.size)
        self.assertEqual(48, cache.memory_usage_bytes)

    def test_evicts_least_recently_used(self):
        # Each 10x10 L image is 100 bytes.
        cache = ImageLruCache(budget=250)
        cache.put('a', Image.new('L', (10, 10)))
        cache.put('b', Image.new('L', (10, 10)))
        cache.get('a')

        cache.put('c', Image.new('L', (10, 10)))

        self.assertIsNotNone(cache.get('a'))
        self.assertIsNone(cache.get('b'))
        self.assertIsNotNone(cache.get('c'))
        self.assertEqual(200, cache.memory_usage_bytes)

    def test_image_larger_than_budget_is_not_cached(self):
        cache = ImageLruCache(budget=99)
        cache.put('a', Image.new('L', (10, 10)))

        self.assertIsNone(cache.get('a'))
        self.assertEqual(0, cache.memory_usage_bytes)

    def test_replacing_an_entry_updates_usage(self):
        cache = ImageLruCache()
        cache.put('a', Image.new('L', (10, 10)))
        cache.put('a', Image.new('L', (5, 5)))

        self.assertEqual(1, cache.size)
        self.assertEqual(25, cache.memory_usage_bytes)

    def test_invalidate_and_clear(self):
        cache = ImageLruCache()
        cache.put('a', Image.new('L', (10, 10)))
        cache.put('b', Image.new('L', (10, 10)))

        cache.invalidate('a')
        self.assertIsNone(cache.get('a'))
        self.assertEqual(100, cache.memory_usage_bytes)

        cache.clear()
        self.assertEqual(0, cache.size)
        self.assertEqual(0, cache.memory_usage_bytes)
