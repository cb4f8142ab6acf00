from ddt import ddt, data, unpack
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import TestCase

from cannon.errors import MultipartError
from cannon.parser import StringResponseParser
from cannon.request import DEFAULT_USER_AGENT, FireRequest, MultipartRequest


@ddt
class TestFireRequest(TestCase):
    @data(
        ('GET', 'http://h/p', {'a': '1', 'b': 'x y'}, 'http://h/p?a=1&b=x+y'),
        ('GET', 'http://h/p?z=0', {'a': '1'}, 'http://h/p?z=0&a=1'),
        ('GET', 'http://h/p', {}, 'http://h/p'),
        ('GET', 'http://h/p', None, 'http://h/p'),
        ('get', 'http://h/p', {'a': '1'}, 'http://h/p?a=1'),
    )
    @unpack
    def test_get_params_go_to_the_query(self, method, url, params, expected_url):
        request = FireRequest(method, url, StringResponseParser(), params=params)

        self.assertEqual(expected_url, request.url)
        self.assertEqual(b'', request.body)

    @data('POST', 'PUT', 'DELETE', 'PATCH')
    def test_other_params_go_to_the_body(self, method):
        request = FireRequest(method, 'http://h/p', StringResponseParser(), params={'a': '1', 'b': 'x y'})

        self.assertEqual('http://h/p', request.url)
        self.assertEqual(b'a=1&b=x+y', request.body)
        self.assertEqual('application/x-www-form-urlencoded; charset=UTF-8',
                         request.prepared_headers()['Content-Type'])

    def test_unencodable_param_is_omitted(self):
        request = FireRequest('GET', 'http://h/p', StringResponseParser(), params={'a': 'é', 'b': '2'},
                              encoding='ascii')
        self.assertEqual('http://h/p?b=2', request.url)

    def test_default_headers(self):
        request = FireRequest('GET', 'http://h/p', StringResponseParser(), user_agent='app/1.0')
        self.assertEqual({'User-Agent': 'app/1.0'}, request.headers)

    def test_default_headers_with_token(self):
        request = FireRequest('GET', 'http://h/p', StringResponseParser(), token='s3cret')

        self.assertEqual({'User-Agent': DEFAULT_USER_AGENT, 'Authorization': 'Bearer s3cret'}, request.headers)

    def test_explicit_headers_replace_defaults(self):
        request = FireRequest('GET', 'http://h/p', StringResponseParser(), token='s3cret',
                              headers={'Accept': 'text/plain'})

        self.assertEqual({'Accept': 'text/plain'}, request.headers)
        self.assertEqual({'Accept': 'text/plain'}, request.prepared_headers())

    def test_explicit_content_type_wins(self):
        request = FireRequest('POST', 'http://h/p', StringResponseParser(), params={'a': '1'},
                              headers={'content-type': 'text/plain'})
        self.assertEqual({'content-type': 'text/plain'}, request.prepared_headers())

    def test_cache_key(self):
        first = FireRequest('GET', 'http://h/p', StringResponseParser(), on_success=print)
        second = FireRequest('GET', 'http://h/p', StringResponseParser(), on_success=repr)

        self.assertEqual(('GET', 'http://h/p'), first.cache_key)
        self.assertEqual(first.cache_key, second.cache_key)

    def test_delivers_exactly_once(self):
        successes = []
        errors = []
        request = FireRequest('GET', 'http://h/p', StringResponseParser(),
                              on_success=successes.append, on_error=errors.append)

        request.deliver_response('first')
        request.deliver_response('second')
        request.deliver_error(RuntimeError())

        self.assertEqual(['first'], successes)
        self.assertEqual([], errors)


class TestMultipartRequest(TestCase):
    def test_body_is_multipart(self):
        with TemporaryDirectory() as directory:
            avatar = Path(directory) / 'avatar.png'
            avatar.write_bytes(b'image')

            request = MultipartRequest('POST', 'http://h/upload', StringResponseParser(),
                                       {'avatar': (avatar, 'image/png')}, {'name': 'x'},
                                       token='t', boundary='b0undary')

        self.assertEqual('http://h/upload', request.url)
        self.assertEqual('multipart/form-data; boundary=b0undary', request.prepared_headers()['Content-Type'])
        self.assertEqual('Bearer t', request.prepared_headers()['Authorization'])
        self.assertIn(b'Content-Disposition: form-data; name="avatar"; filename="avatar.png"', request.body)
        self.assertIn(b'Content-Disposition: form-data; name="name"\r\n\r\nx\r\n', request.body)

    def test_unreadable_file_fails_construction(self):
        with self.assertRaises(MultipartError):
            MultipartRequest('POST', 'http://h/upload', StringResponseParser(),
                             {'avatar': (Path('/nonexistent/avatar.png'), 'image/png')})
