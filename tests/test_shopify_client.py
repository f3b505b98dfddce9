"""Tests for the Shopify GraphQL client."""
import pytest
import requests
from unittest.mock import Mock

from services.exceptions import DeadlineExceededError, ShopifyAPIError, ShopifyTransportError, ShopifyUserError
from services.polling import Deadline
from services.shopify_client import ShopifyGraphQLClient, normalize_shop_domain


def make_response(status_code=200, body=None, headers=None, json_error=False):
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = 'body'
    if json_error:
        response.json.side_effect = ValueError('No JSON object could be decoded')
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    session = Mock()
    session.headers = {}
    return session


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def shopify(session, sleeps):
    return ShopifyGraphQLClient('test-shop.myshopify.com', ' shpat_token ', session=session,
                                max_retries=3, sleep=sleeps.append)


class TestNormalizeShopDomain:

    @pytest.mark.parametrize('value,expected', [
        ('test-shop', 'test-shop.myshopify.com'),
        ('test-shop.myshopify.com', 'test-shop.myshopify.com'),
        ('https://test-shop.myshopify.com/admin', 'test-shop.myshopify.com'),
        ('  http://shop.example.com ', 'shop.example.com'),
    ])
    def test_normalizes(self, value, expected):
        assert normalize_shop_domain(value) == expected


class TestShopifyGraphQLClient:
    """Test the transport and error mapping of the client."""

    def test_endpoint_and_headers(self, shopify, session):
        assert shopify.graphql_url == 'https://test-shop.myshopify.com/admin/api/2025-07/graphql.json'
        assert session.headers['X-Shopify-Access-Token'] == 'shpat_token'
        assert session.headers['Content-Type'] == 'application/json'
        assert session.headers['Accept'] == 'application/json'

    def test_custom_api_version(self, session):
        client = ShopifyGraphQLClient('shop', 'token', api_version='2024-10', session=session)
        assert client.graphql_url == 'https://shop.myshopify.com/admin/api/2024-10/graphql.json'

    def test_posts_query_as_json(self, shopify, session):
        session.post.return_value = make_response(body={'data': {'shop': {'name': 'Test'}}})

        data = shopify.query('{ shop { name } }', timeout=12)

        assert data == {'shop': {'name': 'Test'}}
        session.post.assert_called_once_with(
            shopify.graphql_url, json={'query': '{ shop { name } }'}, timeout=12
        )

    def test_rate_limit_is_retried(self, shopify, session, sleeps):
        session.post.side_effect = [
            make_response(429, headers={'Retry-After': '2'}),
            make_response(body={'data': {'ok': True}}),
        ]

        assert shopify.query('{ ok }') == {'ok': True}
        assert session.post.call_count == 2
        assert sleeps == [2.0]

    def test_rate_limit_exhausts_retries(self, shopify, session, sleeps):
        session.post.return_value = make_response(429)

        with pytest.raises(ShopifyTransportError) as exc_info:
            shopify.execute('{ ok }')

        assert exc_info.value.status_code == 429
        assert session.post.call_count == 3
        assert len(sleeps) == 2

    def test_throttled_error_is_retried(self, shopify, session, sleeps):
        throttled = {'errors': [{'message': 'Throttled', 'extensions': {'code': 'THROTTLED'}}]}
        session.post.side_effect = [
            make_response(body=throttled),
            make_response(body={'data': {'ok': True}}),
        ]

        assert shopify.query('{ ok }') == {'ok': True}
        assert len(sleeps) == 1

    def test_network_failure(self, shopify, session):
        session.post.side_effect = requests.exceptions.ConnectionError('connection refused')

        with pytest.raises(ShopifyTransportError) as exc_info:
            shopify.execute('{ ok }')

        assert 'connection refused' in str(exc_info.value)

    def test_http_error_status(self, shopify, session):
        session.post.return_value = make_response(500)

        with pytest.raises(ShopifyTransportError) as exc_info:
            shopify.execute('{ ok }')

        assert exc_info.value.status_code == 500
        assert exc_info.value.to_dict()['status_code'] == 500

    def test_non_json_body(self, shopify, session):
        session.post.return_value = make_response(json_error=True)

        with pytest.raises(ShopifyTransportError):
            shopify.execute('{ ok }')

    def test_non_object_body(self, shopify, session):
        session.post.return_value = make_response(body=['unexpected'])

        with pytest.raises(ShopifyTransportError):
            shopify.execute('{ ok }')

    def test_graphql_errors(self, shopify, session):
        session.post.return_value = make_response(body={'errors': [{'message': 'Field does not exist'}]})

        with pytest.raises(ShopifyAPIError) as exc_info:
            shopify.query('{ nope }')

        assert exc_info.value.errors == [{'message': 'Field does not exist'}]
        assert exc_info.value.error_code == 'GRAPHQL_ERROR'

    def test_user_errors(self, shopify, session):
        session.post.return_value = make_response(body={'data': {'productCreate': {
            'product': None,
            'userErrors': [{'field': ['title'], 'message': "Title can't be blank"}],
        }}})

        with pytest.raises(ShopifyUserError) as exc_info:
            shopify.mutate('mutation { productCreate }', 'productCreate')

        assert exc_info.value.messages() == ["Title can't be blank"]
        assert not exc_info.value.is_duplicate()

    def test_media_user_errors(self, shopify, session):
        session.post.return_value = make_response(body={'data': {'productCreateMedia': {
            'media': [],
            'mediaUserErrors': [{'field': ['media'], 'message': 'Image URL is invalid'}],
        }}})

        with pytest.raises(ShopifyUserError):
            shopify.mutate('mutation { productCreateMedia }', 'productCreateMedia')

    def test_missing_payload(self, shopify, session):
        session.post.return_value = make_response(body={'data': {'productCreate': None}})

        with pytest.raises(ShopifyAPIError) as exc_info:
            shopify.mutate('mutation { productCreate }', 'productCreate')

        assert not isinstance(exc_info.value, ShopifyUserError)

    def test_mutation_payload_returned(self, shopify, session):
        payload = {'product': {'id': 'gid://shopify/Product/1'}, 'userErrors': []}
        session.post.return_value = make_response(body={'data': {'productCreate': payload}})

        assert shopify.mutate('mutation { productCreate }', 'productCreate') == payload

    def test_graphql_errors_with_null_extensions(self, shopify, session, sleeps):
        session.post.return_value = make_response(body={
            'errors': [{'message': 'Internal error', 'extensions': None}],
        })

        with pytest.raises(ShopifyAPIError) as exc_info:
            shopify.query('{ ok }')

        assert exc_info.value.errors == [{'message': 'Internal error', 'extensions': None}]
        assert session.post.call_count == 1
        assert sleeps == []


class TestShopifyUserError:

    def test_duplicate_detection(self):
        error = ShopifyUserError('failed', errors=[{'message': 'Media is already attached to the variant'}])
        assert error.is_duplicate()

    def test_mixed_errors_are_not_duplicate(self):
        error = ShopifyUserError('failed', errors=[
            {'message': 'Media is already attached'},
            {'message': 'Variant does not exist'},
        ])
        assert not error.is_duplicate()


class TestRequestDeadline:
    """Timeouts and retry waits stay inside the request deadline."""

    @pytest.fixture
    def bounded_client(self, session, fake_clock):
        return ShopifyGraphQLClient('test-shop', 'shpat_token', timeout=30, max_retries=3,
                                    session=session, sleep=fake_clock.sleep)

    def test_timeout_capped_to_time_left(self, bounded_client, session, fake_clock):
        session.post.return_value = make_response(body={'data': {'ok': True}})

        bounded_client.query('{ ok }', deadline=Deadline(5, clock=fake_clock))

        assert session.post.call_args.kwargs['timeout'] == 5

    def test_retry_after_longer_than_deadline(self, bounded_client, session, fake_clock):
        session.post.return_value = make_response(429, headers={'Retry-After': '60'})

        with pytest.raises(DeadlineExceededError) as exc_info:
            bounded_client.execute('{ ok }', deadline=Deadline(10, clock=fake_clock))

        assert exc_info.value.error_code == 'DEADLINE_EXCEEDED'
        assert fake_clock.now - 1000.0 <= 10
        assert fake_clock.sleeps == []
        assert session.post.call_count == 1

    def test_retries_shrink_with_the_deadline(self, bounded_client, session, fake_clock):
        session.post.side_effect = [
            make_response(429, headers={'Retry-After': '4'}),
            make_response(body={'data': {'ok': True}}),
        ]

        assert bounded_client.query('{ ok }', deadline=Deadline(10, clock=fake_clock)) == {'ok': True}

        assert fake_clock.sleeps == [4.0]
        assert [call.kwargs['timeout'] for call in session.post.call_args_list] == [10, 6]

    def test_throttle_backoff_past_deadline(self, bounded_client, session, fake_clock):
        throttled = {'errors': [{'message': 'Throttled', 'extensions': {'code': 'THROTTLED'}}]}
        session.post.return_value = make_response(body=throttled)

        with pytest.raises(DeadlineExceededError):
            bounded_client.execute('{ ok }', deadline=Deadline(0.5, clock=fake_clock))

        assert session.post.call_count == 1

    def test_expired_deadline_sends_nothing(self, bounded_client, session, fake_clock):
        deadline = Deadline(1, clock=fake_clock)
        fake_clock.sleep(2)

        with pytest.raises(DeadlineExceededError):
            bounded_client.execute('{ ok }', deadline=deadline)

        session.post.assert_not_called()
