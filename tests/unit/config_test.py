from importlib import metadata
from mockito import unstub, when
from pathlib import Path
import platform
from unittest import TestCase

from cannon.config import Config, DISK_CACHE_NAME, Identity, default_identity


class TestConfig(TestCase):
    def test_defaults(self):
        config = Config()

        self.assertEqual(DISK_CACHE_NAME, config.cache_directory.name)
        self.assertEqual(300 * 1024 * 1024, config.cache_budget)
        self.assertEqual(4, config.workers)
        self.assertEqual('utf-8', config.encoding)
        self.assertIsNone(config.timeout)

    def test_overrides(self):
        config = Config(cache_directory=Path('somewhere'), workers=2, default_ttl=30)

        self.assertEqual(Path('somewhere'), config.cache_directory)
        self.assertEqual(2, config.workers)
        self.assertEqual(30, config.default_ttl)


class TestIdentity(TestCase):
    def tearDown(self):
        unstub()

    def test_user_agent(self):
        identity = Identity(app_name='app', version='2.0', system='Linux', machine='arm64', node='pi',
                            release='6.1')
        self.assertEqual('app/2.0 (Linux arm64 pi; 6.1; )', identity.user_agent)

    def test_default_identity(self):
        when(metadata).version('app').thenReturn('3.1')
        when(platform).system().thenReturn('Linux')
        when(platform).machine().thenReturn('x86_64')
        when(platform).node().thenReturn('box')
        when(platform).release().thenReturn('6.0')

        self.assertEqual(Identity('app', '3.1', 'Linux', 'x86_64', 'box', '6.0'), default_identity('app'))

    def test_default_identity_for_unknown_package(self):
        with self.assertRaises(metadata.PackageNotFoundError):
            default_identity('surely-no-such-distribution-installed')
