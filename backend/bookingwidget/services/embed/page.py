# backend/bookingwidget/services/embed/page.py
"""
HTML/JS served to third-party pages.

render_widget_page  → GET /embed?widgetId=&widgetKey=  (inside the iframe)
render_loader_js    → GET /embed/bookingtms.js         (on the host page)

The embedded page reports its height with {type: "resize-iframe", height}
on every layout change and sends BOOKINGTMS_BOOKING_COMPLETE after a
successful submission. An activity whose stored config is malformed is
shown as "temporarily unavailable" instead of breaking the page.
"""

import json
from dataclasses import dataclass
from html import escape

from ...models import Activities, Venues
from ..widget.config import WidgetConfig
from .resize import BOOKING_COMPLETE_TYPE, RESIZE_TYPES
from .transport import LOADER_PATH

UNAVAILABLE_MESSAGE = "Online booking is temporarily unavailable. Please try again later."


@dataclass
class ActivityView:
    activity: Activities
    config: WidgetConfig | None  # None = stored config is malformed


_PAGE_CSS = """
    body { margin: 0; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; color: #0f172a; }
    .btms { padding: 16px; }
    .btms h1 { font-size: 20px; margin: 0 0 12px; }
    .btms-activity { border: 1px solid #e2e8f0; border-radius: 8px; padding: 12px; margin-bottom: 12px; }
    .btms-activity h2 { font-size: 16px; margin: 0 0 8px; }
    .btms-slots { display: flex; flex-wrap: wrap; gap: 6px; margin: 8px 0; }
    .btms-slot { border: 1px solid var(--btms-primary); background: #fff; border-radius: 6px; padding: 6px 10px; cursor: pointer; }
    .btms-slot[disabled] { opacity: .4; cursor: default; }
    .btms-slot.selected { background: var(--btms-primary); color: #fff; }
    .btms-form label { display: block; margin: 6px 0; font-size: 14px; }
    .btms-form input, .btms-form select, .btms-form textarea { width: 100%; box-sizing: border-box; padding: 6px; }
    .btms-submit { background: var(--btms-primary); color: #fff; border: 0; border-radius: 6px; padding: 8px 14px; margin-top: 8px; cursor: pointer; }
    .btms-note { color: #64748b; font-size: 14px; }
    .btms-error { color: #dc2626; font-size: 14px; }
"""

# Runs inside the iframe
_PAGE_JS = """
(function() {
  'use strict';
  var root = document.getElementById('btms-root');
  var embedKey = root.dataset.embedKey;

  function postHeight() {
    var h = document.documentElement.scrollHeight;
    window.parent.postMessage({ type: '%(resize_type)s', height: h }, '*');
  }
  if (window.ResizeObserver) {
    new ResizeObserver(postHeight).observe(document.body);
  }
  window.addEventListener('load', postHeight);

  function el(tag, attrs, text) {
    var node = document.createElement(tag);
    Object.keys(attrs || {}).forEach(function(k) { node.setAttribute(k, attrs[k]); });
    if (text) node.textContent = text;
    return node;
  }

  function renderForm(section, cfg, slot) {
    var form = section.querySelector('.btms-form');
    form.innerHTML = '';
    form.appendChild(el('p', { 'class': 'btms-note' }, slot.date + ' ' + slot.start_time + ' - ' + slot.end_time));

    var fields = [['name', 'Name', 'text'], ['email', 'Email', 'email'], ['phone', 'Phone', 'tel']];
    fields.forEach(function(f) {
      var label = el('label', {}, f[1]);
      label.appendChild(el('input', { name: f[0], type: f[2] }));
      form.appendChild(label);
    });
    cfg.ticket_types.forEach(function(t) {
      var label = el('label', {}, t.name + (t.price_per_unit ? ' (' + t.price_per_unit + ')' : ''));
      label.appendChild(el('input', { name: 'ticket:' + t.id, type: 'number', min: '0', value: '0' }));
      form.appendChild(label);
    });
    cfg.questions.forEach(function(q) {
      var label = el('label', {}, q.label + (q.required ? ' *' : ''));
      var input;
      if (q.type === 'select') {
        input = el('select', { name: 'q:' + q.id });
        q.options.forEach(function(o) { input.appendChild(el('option', { value: o }, o)); });
      } else if (q.type === 'textarea') {
        input = el('textarea', { name: 'q:' + q.id });
      } else {
        input = el('input', { name: 'q:' + q.id, type: q.type === 'checkbox' ? 'checkbox' : 'text' });
      }
      label.appendChild(input);
      form.appendChild(label);
    });

    var error = el('p', { 'class': 'btms-error' });
    var button = el('button', { 'class': 'btms-submit', type: 'button' }, 'Book');
    form.appendChild(error);
    form.appendChild(button);

    button.addEventListener('click', function() {
      var body = { date: slot.date, start_time: slot.start_time, ticket_selections: [], answers: {}, customer: {} };
      form.querySelectorAll('input, select, textarea').forEach(function(input) {
        var name = input.name;
        if (name.indexOf('ticket:') === 0) {
          body.ticket_selections.push({ ticket_type_id: name.slice(7), quantity: parseInt(input.value || '0', 10) });
        } else if (name.indexOf('q:') === 0) {
          body.answers[name.slice(2)] = input.type === 'checkbox' ? input.checked : input.value;
        } else {
          body.customer[name] = input.value;
        }
      });
      button.disabled = true;
      fetch('/widget/' + embedKey + '/activities/' + cfg.id + '/bookings', {
        method: 'POST',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify(body)
      }).then(function(r) { return r.json().then(function(data) { return { ok: r.ok, data: data }; }); })
        .then(function(res) {
          button.disabled = false;
          if (!res.ok) {
            error.textContent = res.data.detail || 'Booking failed';
            return;
          }
          form.innerHTML = '';
          form.appendChild(el('p', {}, 'Booked! Confirmation code: ' + res.data.confirmation_code));
          window.parent.postMessage({
            type: '%(complete_type)s',
            payload: {
              bookingId: res.data.id,
              confirmationCode: res.data.confirmation_code,
              date: res.data.booking_date,
              time: res.data.start_time,
              partySize: res.data.players,
              totalAmount: res.data.total_amount
            }
          }, '*');
        })
        .catch(function() {
          button.disabled = false;
          error.textContent = 'Booking failed';
        });
    });
  }

  function loadSlots(section, cfg, date) {
    var list = section.querySelector('.btms-slots');
    var note = section.querySelector('.btms-note');
    list.innerHTML = '';
    note.textContent = 'Loading...';
    fetch('/widget/' + embedKey + '/activities/' + cfg.id + '/slots?date=' + date)
      .then(function(r) { return r.json(); })
      .then(function(data) {
        if (data.status !== 'ok') {
          note.textContent = data.detail || 'Availability temporarily unknown';
          return;
        }
        note.textContent = data.slots.length ? '' : 'No times available on this date';
        data.slots.forEach(function(slot) {
          var button = el('button', { 'class': 'btms-slot', type: 'button' }, slot.start_time);
          if (!slot.bookable) button.disabled = true;
          button.addEventListener('click', function() {
            list.querySelectorAll('.selected').forEach(function(b) { b.classList.remove('selected'); });
            button.classList.add('selected');
            renderForm(section, cfg, slot);
          });
          list.appendChild(button);
        });
      })
      .catch(function() { note.textContent = 'Availability temporarily unknown'; });
  }

  var configs = JSON.parse(document.getElementById('btms-config').textContent);
  configs.forEach(function(cfg) {
    var section = document.getElementById('btms-activity-' + cfg.id);
    var input = section.querySelector('input[type=date]');
    input.addEventListener('change', function() { loadSlots(section, cfg, input.value); });
    if (input.value) loadSlots(section, cfg, input.value);
  });
})();
""" % {"resize_type": RESIZE_TYPES[0], "complete_type": BOOKING_COMPLETE_TYPE}


def _json_for_script(data) -> str:
    """JSON safe to inline inside <script type="application/json">."""
    return json.dumps(data).replace("</", "<\\/")


def _activity_payload(activity: Activities, config: WidgetConfig) -> dict:
    return {
        "id": activity.id,
        "name": activity.name,
        "min_players": config.min_players,
        "max_players": config.max_players,
        "ticket_types": [
            {"id": t.id, "name": t.name, "price_per_unit": t.price_per_unit}
            for t in config.ticket_types
        ],
        "questions": [
            {"id": q.id, "label": q.label, "type": q.type, "required": q.required, "options": list(q.options)}
            for q in config.additional_questions
        ],
    }


def _document(title: str, body: str, primary_color: str = "#2563eb") -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{escape(title)}</title>
  <style>:root {{ --btms-primary: {escape(primary_color)}; }}{_PAGE_CSS}</style>
</head>
<body>
{body}
</body>
</html>"""


def render_unavailable_page(message: str = UNAVAILABLE_MESSAGE, title: str = "Booking") -> str:
    body = f"""<div class="btms">
  <p class="btms-note">{escape(message)}</p>
</div>
<script>
  window.parent.postMessage({{ type: '{RESIZE_TYPES[0]}', height: document.documentElement.scrollHeight }}, '*');
</script>"""
    return _document(title, body)


def render_widget_page(
    venue: Venues,
    activities: list[ActivityView],
    widget_id: str,
    today: str,
) -> str:
    """Full widget page; falls back to the unavailable page when nothing is bookable."""
    usable = [a for a in activities if a.config is not None]
    if not usable:
        return render_unavailable_page(title=venue.name)

    sections = []
    for view in activities:
        name = escape(view.activity.name)
        if view.config is None:
            sections.append(
                f'  <section class="btms-activity">\n'
                f"    <h2>{name}</h2>\n"
                f'    <p class="btms-note">{escape(UNAVAILABLE_MESSAGE)}</p>\n'
                f"  </section>"
            )
            continue
        sections.append(
            f'  <section class="btms-activity" id="btms-activity-{view.activity.id}">\n'
            f"    <h2>{name}</h2>\n"
            f'    <input type="date" value="{escape(today)}" min="{escape(today)}">\n'
            f'    <p class="btms-note"></p>\n'
            f'    <div class="btms-slots"></div>\n'
            f'    <div class="btms-form"></div>\n'
            f"  </section>"
        )

    payload = [_activity_payload(v.activity, v.config) for v in usable]
    body = f"""<div class="btms" id="btms-root" data-embed-key="{escape(venue.embed_key)}" data-widget="{escape(widget_id)}">
  <h1>{escape(venue.name)}</h1>
{chr(10).join(sections)}
</div>
<script type="application/json" id="btms-config">{_json_for_script(payload)}</script>
<script>{_PAGE_JS}</script>"""
    return _document(venue.name, body, venue.primary_color or "#2563eb")


def render_loader_js(base_url: str, allowed_origin: str | None = None) -> str:
    """
    Host-page loader: turns every .bookingtms-widget[data-embed-key] into an iframe.

    allowed_origin None keeps the accept-any-origin baseline for resize messages.
    """
    origin_check = f"if (e.origin !== {json.dumps(allowed_origin)}) return;" if allowed_origin else ""
    return f"""/* BookingTMS embed loader */
(function(window, document) {{
  'use strict';
  var BASE = {json.dumps(base_url)};
  var KEY_RE = /^emb_[a-z0-9]{{12}}$/;
  var frames = [];

  function mount(container) {{
    if (container.dataset.mounted) return;
    var key = container.dataset.embedKey;
    if (!KEY_RE.test(key || '')) {{
      container.textContent = 'Unable to load booking widget';
      return;
    }}
    var widget = container.dataset.widget || 'farebook';
    var iframe = document.createElement('iframe');
    iframe.src = BASE + '/embed?widgetId=' + encodeURIComponent(widget) + '&widgetKey=' + key;
    iframe.style.cssText = 'width:100%;height:800px;border:none;border-radius:8px;';
    iframe.allow = 'payment; camera';
    iframe.title = 'BookingTMS Widget';
    container.appendChild(iframe);
    container.dataset.mounted = 'true';
    frames.push(iframe);
  }}

  window.addEventListener('message', function(e) {{
    {origin_check}
    var data = e.data;
    if (!data || typeof data !== 'object') return;
    var source = frames.filter(function(f) {{ return f.contentWindow === e.source; }})[0];
    if (!source) return;
    if (data.type === 'resize-iframe' || data.type === 'BOOKINGTMS_RESIZE') {{
      var h = data.height;
      if (typeof h !== 'number' || !isFinite(h) || h < 0) return;
      source.style.height = h + 'px';
    }} else if (data.type === '{BOOKING_COMPLETE_TYPE}') {{
      source.parentNode.dispatchEvent(new CustomEvent('bookingComplete', {{ detail: data.payload }}));
    }}
  }});

  function mountAll() {{
    document.querySelectorAll('.bookingtms-widget[data-embed-key]').forEach(mount);
  }}

  if (document.readyState === 'loading') {{
    document.addEventListener('DOMContentLoaded', mountAll);
  }} else {{
    mountAll();
  }}

  window.BookingTMS = {{ mount: mount, mountAll: mountAll, loaderPath: {json.dumps(LOADER_PATH)} }};
}})(window, document);
"""
