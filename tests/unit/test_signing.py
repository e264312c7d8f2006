"""Tests for signed uploads."""
import json

import pytest

from uploadpy import (
    FileHandle,
    SigningUploader,
    SigningError,
    TransportError,
    UploadAborted,
    UploadError,
    resolve_policy,
)


class TestResolvePolicy:
    """Test suite for resolve_policy."""
    
    def test_endpoint(self):
        """Test an explicit endpoint is used verbatim and removed."""
        url, policy = resolve_policy({'endpoint': 'https://cdn.example/up', 'key': 'k'})
        
        assert url == 'https://cdn.example/up'
        assert policy == {'key': 'k'}
    
    def test_endpoint_wins_over_region(self):
        """Test endpoint is checked before region."""
        url, policy = resolve_policy({'endpoint': 'https://e/', 'region': 'r', 'bucket': 'b'})
        
        assert url == 'https://e/'
        assert policy == {'region': 'r', 'bucket': 'b'}
    
    def test_region_and_bucket(self):
        """Test region selects the regional url and keeps bucket."""
        url, policy = resolve_policy({'region': 'eu-west-1', 'bucket': 'b'})
        
        assert url == 'https://s3-eu-west-1.amazonaws.com/b'
        assert policy == {'bucket': 'b'}
    
    def test_bucket_only(self):
        """Test the default region url is derived from the bucket."""
        url, policy = resolve_policy({'bucket': 'b', 'acl': 'private'})
        
        assert url == 'https://b.s3.amazonaws.com'
        assert policy == {'bucket': 'b', 'acl': 'private'}
    
    def test_modifies_policy_in_place(self):
        """Test the selector key is removed from the given mapping."""
        policy = {'endpoint': 'https://e/'}
        
        _, returned = resolve_policy(policy)
        
        assert returned is policy
        assert 'endpoint' not in policy
    
    def test_malformed_response_is_not_rejected(self, caplog):
        """Test a response without selectors still yields a url."""
        url, policy = resolve_policy({'key': 'k'})
        
        assert url == 'https://None.s3.amazonaws.com'
        assert policy == {'key': 'k'}
        assert 'no endpoint, region or bucket' in caplog.text


class TestSign:
    """Test suite for SigningUploader.sign."""
    
    @pytest.fixture
    def file(self):
        """A file to sign for."""
        return FileHandle("photo.png", b"12345")
    
    @pytest.mark.asyncio
    async def test_get_sends_query_params(self, make_factory, fake_transport, file):
        """Test GET signing sends extra as query parameters."""
        factory = make_factory(fake_transport(outcome=('load', ({'bucket': 'b'},))))
        uploader = SigningUploader(
            signing_url="https://app.example/sign",
            signing_headers={"Authorization": "Bearer t"},
            transport_factory=factory
        )
        extra = {'album': 'x'}
        
        policy = await uploader.sign(file, extra)
        
        transport = factory.created[0]
        assert policy == {'bucket': 'b'}
        assert transport.method == 'GET'
        assert transport.url == "https://app.example/sign"
        assert transport.sent == [None]
        assert transport.params == {'album': 'x', 'name': 'photo.png', 'type': 'image/png', 'size': 5}
        assert transport.headers == {"Authorization": "Bearer t"}
    
    @pytest.mark.asyncio
    async def test_get_is_case_insensitive(self, make_factory, fake_transport, file):
        """Test a lowercase get still uses query parameters."""
        factory = make_factory(fake_transport(outcome=('load', ({'bucket': 'b'},))))
        uploader = SigningUploader(signing_method='get', transport_factory=factory)
        
        await uploader.sign(file)
        
        assert factory.created[0].sent == [None]
        assert factory.created[0].params['name'] == 'photo.png'
    
    @pytest.mark.asyncio
    async def test_post_sends_json_body(self, make_factory, fake_transport, file):
        """Test non-GET signing sends a JSON body."""
        factory = make_factory(fake_transport(outcome=('load', ({'bucket': 'b'},))))
        uploader = SigningUploader(
            signing_method='POST',
            signing_headers={"X-CSRF": "abc"},
            transport_factory=factory
        )
        
        await uploader.sign(file, {'album': 'x'})
        
        transport = factory.created[0]
        assert transport.method == 'POST'
        assert transport.url == '/sign'
        assert json.loads(transport.sent[0]) == {
            'album': 'x', 'name': 'photo.png', 'type': 'image/png', 'size': 5
        }
        assert transport.params is None
        assert transport.headers == {'Content-Type': 'application/json', 'X-CSRF': 'abc'}
    
    @pytest.mark.asyncio
    async def test_extra_is_mutated(self, transport_factory, file):
        """Test file metadata is written into the caller's mapping."""
        uploader = SigningUploader(transport_factory=transport_factory)
        extra = {}
        
        await uploader.sign(file, extra)
        
        assert extra == {'name': 'photo.png', 'type': 'image/png', 'size': 5}
    
    @pytest.mark.asyncio
    async def test_json_text_response_is_parsed(self, make_factory, fake_transport, file):
        """Test a JSON string response is decoded."""
        factory = make_factory(fake_transport(outcome=('load', ('{"bucket": "b"}',))))
        uploader = SigningUploader(transport_factory=factory)
        
        assert await uploader.sign(file) == {'bucket': 'b'}
    
    @pytest.mark.asyncio
    async def test_invalid_json_response(self, make_factory, fake_transport, file):
        """Test an undecodable response fails signing."""
        factory = make_factory(fake_transport(outcome=('load', ('<html>',))))
        uploader = SigningUploader(transport_factory=factory)
        
        with pytest.raises(SigningError) as exc_info:
            await uploader.sign(file)
        
        assert exc_info.value.text_status == 'parsererror'
        assert isinstance(exc_info.value.error_thrown, ValueError)
        assert uploader.is_signing is False
    
    @pytest.mark.asyncio
    async def test_is_signing_during_request(self, make_factory, fake_transport, file):
        """Test is_signing is set while the request is in flight."""
        transport = fake_transport(outcome=('load', ({'bucket': 'b'},)))
        uploader = SigningUploader(transport_factory=make_factory(transport))
        seen = []
        original_send = transport.send
        
        async def send(data=None, params=None):
            seen.append(uploader.is_signing)
            await original_send(data, params)
        
        transport.send = send
        await uploader.sign(file)

        assert seen == [True]
        assert uploader.is_signing is False

    @pytest.mark.asyncio
    async def test_send_raising_becomes_signing_error(self, make_factory, fake_transport, file):
        """Test an exception raised while signing is reported as SigningError."""
        transport = fake_transport()

        async def send(data=None, params=None):
            raise RuntimeError("open() must be called before send()")

        transport.send = send
        uploader = SigningUploader(transport_factory=make_factory(transport))
        events = []
        uploader.on('did_error_on_sign', lambda: events.append('did_error_on_sign'))
        uploader.on('did_error', lambda *args: events.append('did_error'))

        with pytest.raises(SigningError) as exc_info:
            await uploader.sign(file)

        assert isinstance(exc_info.value.error_thrown, RuntimeError)
        assert events == ['did_error_on_sign', 'did_error']
        assert uploader.is_signing is False


class TestSigningHooks:
    """Test suite for did_sign and did_error_on_sign."""
    
    @pytest.fixture
    def uploader(self):
        """Create signing uploader instance."""
        return SigningUploader()
    
    def test_did_sign_passes_response_through(self, uploader):
        """Test did_sign returns its argument and emits it."""
        received = []
        uploader.on('did_sign', received.append)
        uploader.is_signing = True
        response = {'bucket': 'b'}
        
        assert uploader.did_sign(response) is response
        assert received == [response]
        assert uploader.is_signing is False
    
    def test_did_error_on_sign_emits_both_events(self, uploader):
        """Test did_error_on_sign emits without payload, then did_error."""
        calls = []
        uploader.on('did_error_on_sign', lambda *args: calls.append(('did_error_on_sign', args)))
        uploader.on('did_error', lambda *args: calls.append(('did_error', args)))
        uploader.is_signing = True
        err = TransportError(status=403)
        
        result = uploader.did_error_on_sign(err, 'error', 'Forbidden')
        
        assert result is err
        assert calls == [
            ('did_error_on_sign', ()),
            ('did_error', (err, 'error', 'Forbidden')),
        ]
        assert str(err.error_thrown) == 'Forbidden'
        assert uploader.is_signing is False
        assert uploader.is_uploading is False


class TestSignedUpload:
    """Test suite for SigningUploader.upload."""
    
    @pytest.mark.asyncio
    async def test_endpoint_flow(self, make_factory, fake_transport, file_a):
        """Test the upload goes to the signed endpoint with policy fields."""
        sign_transport = fake_transport(outcome=('load', ({
            'endpoint': 'https://cdn.example/up',
            'key': 'uploads/a.txt',
            'signature': 'sig',
        },)))
        upload_transport = fake_transport(outcome=('load', ('',)))
        factory = make_factory(sign_transport, upload_transport)
        uploader = SigningUploader(headers={'X-Upload': '1'}, transport_factory=factory)
        events = []
        for name in ('did_sign', 'did_upload'):
            uploader.on(name, lambda *args, name=name: events.append(name))
        
        result = await uploader.upload(file_a, {'album': 'x'})
        
        assert result == ''
        assert events == ['did_sign', 'did_upload']
        assert upload_transport.method == 'POST'
        assert upload_transport.url == 'https://cdn.example/up'
        assert upload_transport.headers == {'X-Upload': '1'}
        payload = upload_transport.sent[0]
        assert payload.keys() == ['key', 'signature', 'file']
        assert payload.get('file') is file_a
        assert uploader.is_uploading is False
        assert uploader.is_signing is False
    
    @pytest.mark.asyncio
    async def test_region_flow(self, make_factory, fake_transport, file_a):
        """Test region responses upload to the regional bucket url."""
        sign_transport = fake_transport(outcome=('load', ({'region': 'eu-west-1', 'bucket': 'b'},)))
        factory = make_factory(sign_transport)
        uploader = SigningUploader(param_namespace='s3', transport_factory=factory)
        
        await uploader.upload(file_a)
        
        upload_transport = factory.created[1]
        assert upload_transport.url == 'https://s3-eu-west-1.amazonaws.com/b'
        assert upload_transport.sent[0].keys() == ['s3[bucket]', 's3[file]']
    
    @pytest.mark.asyncio
    async def test_signing_failure_short_circuits(self, make_factory, fake_transport, file_a):
        """Test no upload request is made when signing fails."""
        descriptor = TransportError(status=401)
        factory = make_factory(fake_transport(outcome=('error', (descriptor, 'error', 'Unauthorized'))))
        uploader = SigningUploader(transport_factory=factory)
        events = []
        for name in ('did_error_on_sign', 'did_error', 'did_upload'):
            uploader.on(name, lambda *args, name=name: events.append(name))
        
        with pytest.raises(SigningError) as exc_info:
            await uploader.upload(file_a)
        
        assert exc_info.value.status == 401
        assert exc_info.value.descriptor is descriptor
        assert len(factory.created) == 1
        assert events == ['did_error_on_sign', 'did_error']
        assert uploader.is_signing is False
    
    @pytest.mark.asyncio
    async def test_upload_failure_after_signing(self, make_factory, fake_transport, file_a):
        """Test a storage error is raised as UploadError."""
        factory = make_factory(
            fake_transport(outcome=('load', ({'bucket': 'b'},))),
            fake_transport(outcome=('error', (TransportError(status=403), 'error', 'Forbidden'))),
        )
        uploader = SigningUploader(transport_factory=factory)
        
        with pytest.raises(UploadError) as exc_info:
            await uploader.upload(file_a)
        
        assert not isinstance(exc_info.value, SigningError)
        assert exc_info.value.status == 403
        assert uploader.is_uploading is False
    
    @pytest.mark.asyncio
    async def test_abort_during_signing_skips_upload(self, make_factory, fake_transport, file_a):
        """Test an abort issued while signing stops the upload request."""
        sign_transport = fake_transport(outcome=('load', ({'bucket': 'b'},)), block=True)
        sign_transport.bind_loop()
        upload_transport = fake_transport()
        factory = make_factory(sign_transport, upload_transport)
        uploader = SigningUploader(transport_factory=factory)
        
        task = uploader.upload(file_a)
        uploader.abort()
        sign_transport.release()
        
        with pytest.raises(UploadAborted):
            await task
        
        assert sign_transport.abort_calls == 0
        assert upload_transport.abort_calls == 1
        assert upload_transport.sent == []
        assert uploader.is_uploading is False
