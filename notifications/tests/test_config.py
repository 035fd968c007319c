"""
Tests for the event/role configuration and the message templates.
"""

import json
import os
import tempfile
from unittest.mock import MagicMock, patch

import requests
from django.conf import settings
from django.test import SimpleTestCase

from notifications.services.config import NotificationConfigStore
from notifications.services.messages import DEFAULT_MESSAGE, MessageCatalog, order_reference


def remote_response(document):
    response = MagicMock()
    response.json.return_value = document
    response.raise_for_status.return_value = None
    return response


class TestNotificationConfigStore(SimpleTestCase):
    """Gate deciding which roles hear about an event."""

    def setUp(self):
        """Local document with one explicit opt-out."""
        handle = tempfile.NamedTemporaryFile('w', suffix='.json', delete=False, encoding='utf-8')
        json.dump({
            'step-cancelled': {'category': 'step', 'buyer': False, 'seller': True},
            'purchase': {'category': 'step', 'buyer': True},
        }, handle)
        handle.close()
        self.local_path = handle.name
        self.addCleanup(os.unlink, self.local_path)

    # ==========================================
    # Sources
    # ==========================================

    @patch('notifications.services.config.requests.get')
    def test_remote_document_wins(self, mock_get):
        mock_get.return_value = remote_response({'step-cancelled': {'buyer': True}})
        store = NotificationConfigStore(url='https://config.example/notif.json', path=self.local_path)

        self.assertTrue(store.is_enabled('step-cancelled', 'buyer'))
        mock_get.assert_called_once_with('https://config.example/notif.json', timeout=store.timeout)

    @patch('notifications.services.config.requests.get')
    def test_remote_failure_falls_back_to_local(self, mock_get):
        mock_get.side_effect = requests.ConnectionError('unreachable')
        store = NotificationConfigStore(url='https://config.example/notif.json', path=self.local_path)

        self.assertFalse(store.is_enabled('step-cancelled', 'buyer'))
        self.assertTrue(store.is_enabled('step-cancelled', 'seller'))

    def test_local_only(self):
        store = NotificationConfigStore(url='', path=self.local_path)
        self.assertFalse(store.is_enabled('step-cancelled', 'buyer'))

    @patch('notifications.services.config.requests.get')
    def test_document_loaded_once(self, mock_get):
        mock_get.return_value = remote_response({'step-shipped': {'buyer': True}})
        store = NotificationConfigStore(url='https://config.example/notif.json', path='')

        store.is_enabled('step-shipped', 'buyer')
        store.is_enabled('step-shipped', 'seller')
        self.assertEqual(mock_get.call_count, 1)

        store.invalidate()
        store.is_enabled('step-shipped', 'buyer')
        self.assertEqual(mock_get.call_count, 2)

    def test_bundled_document(self):
        store = NotificationConfigStore(url='', path=settings.NOTIFICATION_CONFIG_PATH)
        self.assertTrue(store.is_enabled('step-confirmed', 'delivery'))
        self.assertFalse(store.is_enabled('step-review', 'delivery'))

    # ==========================================
    # Defaults
    # ==========================================

    def test_critical_default_when_unconfigured(self):
        """Roles the document is silent on fall back to the built-in purchase defaults."""
        store = NotificationConfigStore(url='', path=self.local_path)
        self.assertTrue(store.is_enabled('purchase', 'buyer'))
        self.assertTrue(store.is_enabled('purchase', 'seller'))
        self.assertFalse(store.is_enabled('purchase', 'delivery'))
        self.assertTrue(store.is_enabled('purchase', 'admin'))

    def test_purchase_defaults_without_document(self):
        """New orders go to sellers and admins only when nothing loads."""
        with self.assertLogs('notifications.services.config', level='WARNING'):
            store = NotificationConfigStore(url='', path='/nonexistent/notif.json')
            self.assertIsNone(store.config)

        self.assertEqual(
            {role: store.is_enabled('purchase', role) for role in ['buyer', 'seller', 'delivery', 'admin']},
            {'buyer': False, 'seller': True, 'delivery': False, 'admin': True},
        )

    def test_unknown_event_fails_open(self):
        store = NotificationConfigStore(url='', path=self.local_path)
        with self.assertLogs('notifications.services.config', level='WARNING'):
            self.assertTrue(store.is_enabled('step-teleported', 'buyer'))

    def test_no_document_fails_open(self):
        with self.assertLogs('notifications.services.config', level='WARNING'):
            store = NotificationConfigStore(url='', path='/nonexistent/notif.json')
            self.assertIsNone(store.config)
        self.assertTrue(store.is_enabled('step-shipped', 'buyer'))

    def test_non_boolean_value_ignored(self):
        store = NotificationConfigStore(url='', path=self.local_path)
        store._config = {'step-shipped': {'buyer': 'yes'}}
        store._loaded = True
        self.assertTrue(store.is_enabled('step-shipped', 'buyer'))

    # ==========================================
    # Store events
    # ==========================================

    def test_store_events_only_for_admin_and_seller(self):
        store = NotificationConfigStore(url='', path=self.local_path)

        self.assertEqual(store.category('item-accepted'), 'store')
        self.assertTrue(store.is_enabled('item-accepted', 'seller'))
        self.assertTrue(store.is_enabled('item-accepted', 'admin'))
        self.assertFalse(store.is_enabled('item-accepted', 'buyer'))
        self.assertFalse(store.is_enabled('item-accepted', 'delivery'))

    def test_store_events_without_document(self):
        store = NotificationConfigStore(url='', path='')
        self.assertEqual(store.category('new-item-added'), 'store')
        self.assertFalse(store.is_enabled('new-item-added', 'buyer'))


class TestMessageCatalog(SimpleTestCase):
    """Rendering of titles and bodies."""

    def setUp(self):
        self.catalog = MessageCatalog(templates={
            'steps': {
                'step-shipped': {
                    'buyer': {'title': 'Shipped', 'body': 'Order{order_ref} is on its way'},
                },
                'general_update': {
                    'seller': {'title': 'Update', 'body': 'Order{order_ref} is now {step_name}'},
                },
            }
        })

    def test_exact_template(self):
        title, body = self.catalog.render('step-shipped', 'buyer', order_ref=order_reference('abc123'))
        self.assertEqual(title, 'Shipped')
        self.assertEqual(body, 'Order #abc123 is on its way')

    def test_general_update_fallback(self):
        _, body = self.catalog.render('step-shipped', 'seller', order_ref=' #abc123', step_name='Shipped')
        self.assertEqual(body, 'Order #abc123 is now Shipped')

    def test_default_message(self):
        self.assertEqual(
            self.catalog.render('step-shipped', 'delivery'),
            (DEFAULT_MESSAGE['title'], DEFAULT_MESSAGE['body'])
        )

    def test_missing_variables_render_blank(self):
        _, body = self.catalog.render('step-shipped', 'buyer')
        self.assertEqual(body, 'Order is on its way')

    def test_bundled_templates(self):
        catalog = MessageCatalog()
        title, body = catalog.render('item-accepted', 'seller', product_name='Olive oil')
        self.assertEqual(title, 'Product accepted')
        self.assertIn('Olive oil', body)

    def test_order_reference(self):
        self.assertEqual(order_reference('abc123'), ' #abc123')
        self.assertEqual(order_reference(None), '')
