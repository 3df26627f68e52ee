"""Model names, messages and conversation validation."""
import pytest

from ollaweb.core.errors import InvalidConversation
from ollaweb.core.schemas import (
    Conversation, ImageAttachment, InstallState, InstallStatus, Message, normalize_model_name
)

IMAGE = ImageAttachment(data=b'\x89PNG\r\n', media_type='image/png')


class TestNormalizeModelName:

    def test_untagged_name_gets_latest(self):
        assert normalize_model_name('demo-model') == 'demo-model:latest'

    def test_explicit_latest_is_unchanged(self):
        assert normalize_model_name('demo-model:latest') == normalize_model_name('demo-model')

    def test_explicit_tag_is_kept(self):
        assert normalize_model_name('llama3.2:1b') == 'llama3.2:1b'

    def test_registry_port_is_not_a_tag(self):
        assert normalize_model_name('registry.local:5000/team/demo') == 'registry.local:5000/team/demo:latest'

    def test_case_sensitive(self):
        assert normalize_model_name('Demo-Model') != normalize_model_name('demo-model')

    @pytest.mark.parametrize('name', ['', '   ', None])
    def test_empty_name_rejected(self, name):
        with pytest.raises(ValueError):
            normalize_model_name(name)


class TestConversation:

    def test_image_on_final_user_message_accepted(self):
        conversation = Conversation([
            Message('user', 'hi'),
            Message('assistant', 'hello'),
            Message('user', 'what is this?', image=IMAGE),
        ])
        assert conversation.image is IMAGE

    def test_image_on_earlier_message_rejected(self):
        with pytest.raises(InvalidConversation):
            Conversation([
                Message('user', 'look', image=IMAGE),
                Message('assistant', 'a cat'),
                Message('user', 'thanks'),
            ])

    def test_image_on_final_assistant_message_rejected(self):
        with pytest.raises(InvalidConversation):
            Conversation([Message('user', 'hi'), Message('assistant', 'here', image=IMAGE)])

    def test_empty_conversation_rejected(self):
        with pytest.raises(InvalidConversation):
            Conversation([])

    def test_unknown_role_rejected(self):
        with pytest.raises(InvalidConversation):
            Message('tool', 'result')

    def test_only_final_message_carries_image_to_engine(self):
        conversation = Conversation([
            Message('user', 'first'),
            Message('assistant', 'reply'),
            Message('user', 'describe', image=IMAGE),
        ])
        payload = conversation.to_engine()
        assert [m.get('images') for m in payload[:-1]] == [None, None]
        assert payload[-1]['images'] == [IMAGE.to_base64()]
        assert payload[-1]['content'] == 'describe'


class TestConversationFromPayload:

    def test_client_preview_urls_are_ignored(self):
        raw = [
            {'role': 'user', 'content': 'look', 'image': 'blob:http://localhost/abc'},
            {'role': 'assistant', 'content': 'a cat'},
            {'role': 'user', 'content': 'and this?'},
        ]
        conversation = Conversation.from_payload(raw, image=IMAGE)
        assert [m.image for m in conversation] == [None, None, IMAGE]

    def test_upload_with_final_assistant_message_is_rejected_not_stripped(self):
        raw = [{'role': 'user', 'content': 'hi'}, {'role': 'assistant', 'content': 'hello'}]
        with pytest.raises(InvalidConversation):
            Conversation.from_payload(raw, image=IMAGE)

    def test_text_only_payload(self):
        conversation = Conversation.from_payload([{'role': 'user', 'content': 'hi'}])
        assert conversation.image is None
        assert conversation.to_engine() == [{'role': 'user', 'content': 'hi'}]

    @pytest.mark.parametrize('raw', [[], {}, 'hello', [['user', 'hi']]])
    def test_malformed_payload_rejected(self, raw):
        with pytest.raises(InvalidConversation):
            Conversation.from_payload(raw)


def test_install_status_serializes_state_value():
    status = InstallStatus(model='demo-model:latest', state=InstallState.FAILED, reason='exit 1')
    data = status.to_dict()
    assert data['state'] == 'failed'
    assert data['reason'] == 'exit 1'
