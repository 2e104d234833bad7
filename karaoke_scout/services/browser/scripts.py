"""JavaScript snippets evaluated in the page by the browser services.

Kept as module constants so every DOM probe is in one place and test
doubles can key canned answers on the exact script object.
"""

LOGIN_PROBE = """() => ({
  hasPassword: !!document.querySelector('input[type="password"]'),
  hasEmailPass: !!(document.querySelector('#email') && document.querySelector('#pass')),
  hasLoginForm: !!document.querySelector('#login_form, form[action*="login"]'),
  hasNavigation: !!document.querySelector('[role="navigation"]'),
})"""

SCROLL_BY_VIEWPORT = """(fraction) => {
  window.scrollBy(0, Math.floor(window.innerHeight * fraction));
  return window.scrollY;
}"""

SCROLL_TO_BOTTOM = """() => {
  window.scrollTo(0, document.body.scrollHeight);
  return document.body.scrollHeight;
}"""

SET_ZOOM = """(zoom) => { document.body.style.zoom = String(zoom); }"""

COUNT_FEED_IMAGES = """() => new Set(
  Array.from(document.querySelectorAll('img[src*="scontent"], img[src*="fbcdn"]'))
    .map((img) => img.src)
).size"""

TEXT_LENGTH = """() => (document.body ? document.body.innerText.length : 0)"""

FEED_IMAGES = """() => Array.from(document.querySelectorAll('a[href*="/photo"]')).flatMap((a) =>
  Array.from(a.querySelectorAll('img')).map((img) => ({
    src: img.currentSrc || img.src || '',
    href: a.href || '',
    width: img.naturalWidth || img.width || 0,
    height: img.naturalHeight || img.height || 0,
    alt: img.alt || '',
  }))
)"""

HEADER_TEXT = """() => {
  const parts = [];
  for (const sel of ['header', 'h1', 'h2', '[role="main"] h1', 'title']) {
    for (const el of Array.from(document.querySelectorAll(sel)).slice(0, 5)) {
      const text = (el.innerText || el.textContent || '').trim();
      if (text) parts.push(text);
    }
  }
  return parts.join('\\n');
}"""

CONTENT_TEXT = """() => {
  const selectors = ['main', 'article', '[role="main"]', '.content', '#content',
                     '.events', '.schedule', 'body'];
  const keywords = /karaoke|venue|bar|restaurant/i;
  let fallback = '';
  for (const sel of selectors) {
    const el = document.querySelector(sel);
    if (!el) continue;
    const text = (el.innerText || '').trim();
    if (!text) continue;
    if (keywords.test(text)) return text;
    if (!fallback) fallback = text;
  }
  return fallback;
}"""

VISIBLE_ELEMENTS = """() => {
  const out = [];
  const nodes = document.querySelectorAll(
    'button, [role="button"], a[role="button"], [aria-label], input[type="submit"]');
  for (const el of nodes) {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    if (rect.width < 1 || rect.height < 1 || style.visibility === 'hidden' ||
        style.display === 'none') continue;
    const text = (el.innerText || el.value || '').trim().slice(0, 80);
    const label = el.getAttribute('aria-label') || '';
    if (!text && !label) continue;
    let selector = el.tagName.toLowerCase();
    if (el.id) selector = '#' + CSS.escape(el.id);
    else if (label) selector += '[aria-label="' + label.replace(/"/g, '\\\\"') + '"]';
    out.push({index: out.length, tag: el.tagName.toLowerCase(), text, ariaLabel: label,
              role: el.getAttribute('role') || '', selector,
              inDialog: !!el.closest('[role="dialog"], [aria-modal="true"]')});
    if (out.length >= 60) break;
  }
  return out;
}"""

FIND_BUTTON_TEXT = """(texts) => {
  const nodes = Array.from(document.querySelectorAll('button, [role="button"], a'));
  for (const wanted of texts) {
    const w = wanted.toLowerCase();
    for (const el of nodes) {
      const t = (el.innerText || el.getAttribute('aria-label') || '').trim().toLowerCase();
      const rect = el.getBoundingClientRect();
      if (t === w && rect.width > 0 && rect.height > 0) return wanted;
    }
  }
  return null;
}"""

CLICK_BY_TEXT = """(wanted) => {
  const w = wanted.trim().toLowerCase();
  const nodes = Array.from(document.querySelectorAll('button, [role="button"], a, input[type="submit"]'));
  for (const el of nodes) {
    const t = (el.innerText || el.value || el.getAttribute('aria-label') || '').trim().toLowerCase();
    if (t === w) { el.click(); return true; }
  }
  return false;
}"""

HAS_BLOCKING_OVERLAY = """() => Array.from(document.querySelectorAll('div, section')).some((el) => {
  const style = window.getComputedStyle(el);
  const z = parseInt(style.zIndex, 10);
  if (!(style.position === 'fixed' && z >= 1000)) return false;
  const rect = el.getBoundingClientRect();
  return rect.width >= window.innerWidth * 0.5 && rect.height >= window.innerHeight * 0.5;
})"""

BLOCK_PROBE = """() => {
  const text = (document.body ? document.body.innerText : '').slice(0, 5000).toLowerCase();
  return /captcha|unusual traffic|temporarily blocked|you're temporarily blocked|access denied/.test(text);
}"""
