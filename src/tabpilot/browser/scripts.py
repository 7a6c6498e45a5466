"""JavaScript injected into the agent's tab.

Each public constant is the source of a single-argument function
expression, evaluated by ``BrowserHost.run_in_page`` / ``run_in_frame``.
Scripts only return JSON-serialisable values. Shared helpers live in
``_HELPERS`` and are spliced into every script body.
"""

from __future__ import annotations

# Limits shared with the Python side of observation capture.
MAX_INTERACTIVE = 60
MAX_EDITABLE = 12
MAX_RAW_CONTROLS = 80
MAX_CONTROLS = 16
MAX_TEXT_CHARS = 2000
LONG_TEXT_CHARS = 80
MAX_ANCESTOR_HOPS = 8

_HELPERS = r"""
    const norm = (s) => String(s || '').replace(/\s+/g, ' ').trim();
    const clip = (s, n) => { const t = norm(s); return t.length > n ? t.slice(0, n) : t; };

    function isVisible(el) {
        if (!el || !el.getBoundingClientRect) return false;
        const rect = el.getBoundingClientRect();
        if (rect.width <= 0 || rect.height <= 0) return false;
        const style = window.getComputedStyle(el);
        return style.display !== 'none' && style.visibility !== 'hidden' && style.opacity !== '0';
    }

    function getLabel(el) {
        if (!el) return '';
        const aria = el.getAttribute && el.getAttribute('aria-label');
        if (aria) return clip(aria, 120);
        const labelledBy = el.getAttribute && el.getAttribute('aria-labelledby');
        if (labelledBy) {
            const txt = labelledBy.split(/\s+/).map(id => {
                const ref = document.getElementById(id);
                return ref ? ref.textContent : '';
            }).join(' ');
            if (norm(txt)) return clip(txt, 120);
        }
        if (el.id) {
            const lbl = document.querySelector(`label[for="${CSS.escape(el.id)}"]`);
            if (lbl) return clip(lbl.textContent, 120);
        }
        const wrap = el.closest && el.closest('label');
        if (wrap) return clip(wrap.textContent, 120);
        if (el.title) return clip(el.title, 120);
        if (el.placeholder) return clip(el.placeholder, 120);
        return '';
    }

    function textOf(el) {
        if (!el) return '';
        if (el.tagName === 'INPUT') return clip(el.value || el.getAttribute('aria-label') || '', 120);
        return clip(el.innerText || el.textContent || el.getAttribute('aria-label') || el.title || '', 120);
    }

    function roleOf(el) {
        const explicit = el.getAttribute && el.getAttribute('role');
        if (explicit) return explicit;
        const tag = el.tagName.toLowerCase();
        if (tag === 'a') return 'link';
        if (tag === 'button' || tag === 'summary') return 'button';
        if (tag === 'select') return 'combobox';
        if (tag === 'textarea') return 'textbox';
        if (tag === 'input') {
            const t = (el.type || 'text').toLowerCase();
            if (['button', 'submit', 'reset', 'image'].includes(t)) return 'button';
            if (t === 'checkbox' || t === 'radio') return t;
            if (t === 'search') return 'searchbox';
            return 'textbox';
        }
        if (el.isContentEditable) return 'textbox';
        return tag;
    }

    function buildSelector(el) {
        if (el.id && document.querySelectorAll('#' + CSS.escape(el.id)).length === 1) {
            return '#' + CSS.escape(el.id);
        }
        const tag = el.tagName.toLowerCase();
        for (const attr of ['data-testid', 'data-test', 'name', 'aria-label']) {
            const val = el.getAttribute(attr);
            if (!val) continue;
            const sel = `${tag}[${attr}="${CSS.escape(val)}"]`;
            try {
                if (document.querySelectorAll(sel).length === 1) return sel;
            } catch (e) { /* fall through */ }
        }
        const parts = [];
        let node = el;
        for (let depth = 0; node && node.nodeType === 1 && depth < 5; depth++) {
            let part = node.tagName.toLowerCase();
            if (node.id) { parts.unshift('#' + CSS.escape(node.id)); break; }
            const parent = node.parentElement;
            if (parent) {
                const same = Array.from(parent.children).filter(c => c.tagName === node.tagName);
                if (same.length > 1) part += `:nth-of-type(${same.indexOf(node) + 1})`;
            }
            parts.unshift(part);
            node = parent;
        }
        return parts.join(' > ');
    }

    const MODAL_SELECTOR = [
        'dialog[open]', '[role="dialog"]', '[role="alertdialog"]', '[aria-modal="true"]',
        '.modal.show', '.modal.open', '.modal.is-open', '[class*="modal"][class*="open"]',
        '[data-state="open"][role]',
    ].join(', ');

    function zIndexOf(el) {
        let node = el;
        while (node && node.nodeType === 1) {
            const z = parseInt(window.getComputedStyle(node).zIndex, 10);
            if (!Number.isNaN(z)) return z;
            node = node.parentElement;
        }
        return 0;
    }

    function findActiveModal() {
        const found = Array.from(document.querySelectorAll(MODAL_SELECTOR)).filter(isVisible);
        if (!found.length) return null;
        found.sort((a, b) => {
            const dz = zIndexOf(b) - zIndexOf(a);
            if (dz !== 0) return dz;
            const ra = a.getBoundingClientRect();
            const rb = b.getBoundingClientRect();
            return rb.width * rb.height - ra.width * ra.height;
        });
        return found[0];
    }

    const CLICKABLE_SELECTOR = [
        'a[href]', 'button', 'summary', 'select',
        'input[type="button"]', 'input[type="submit"]', 'input[type="reset"]', 'input[type="image"]',
        'input[type="checkbox"]', 'input[type="radio"]',
        '[role="button"]', '[role="link"]', '[role="tab"]', '[role="menuitem"]', '[role="option"]',
        '[role="checkbox"]', '[role="radio"]', '[role="switch"]', '[onclick]',
        '[tabindex]:not([tabindex="-1"])',
    ].join(', ');

    function isClickable(el) {
        if (!el || el.nodeType !== 1) return false;
        if (el.matches(CLICKABLE_SELECTOR)) return true;
        return window.getComputedStyle(el).cursor === 'pointer';
    }

    function clickableAncestor(el) {
        let node = el;
        for (let hops = 0; node && hops <= __MAX_HOPS__; hops++) {
            if (isClickable(node)) return { el: node, hops };
            node = node.parentElement;
        }
        return null;
    }

    const EDITABLE_SELECTOR = [
        'input:not([type])', 'input[type="text"]', 'input[type="search"]', 'input[type="email"]',
        'input[type="url"]', 'input[type="tel"]', 'input[type="number"]', 'input[type="password"]',
        'textarea', '[contenteditable=""]', '[contenteditable="true"]',
        '[role="textbox"]', '[role="searchbox"]', '[role="combobox"]',
    ].join(', ');

    function isEditable(el) {
        if (!el || el.nodeType !== 1) return false;
        if (el.disabled || el.readOnly) return false;
        return el.matches(EDITABLE_SELECTOR) || el.isContentEditable;
    }

    function isSearchLike(el) {
        const role = (el.getAttribute('role') || '').toLowerCase();
        if (role === 'searchbox' || role === 'combobox') return true;
        if ((el.type || '').toLowerCase() === 'search') return true;
        if (el.closest('form[role="search"], [role="search"]')) return true;
        const hay = [el.name, el.id, el.placeholder, el.getAttribute('aria-label'), el.className]
            .map(v => String(v || '').toLowerCase()).join(' ');
        return /(^|[^a-z])(search|query|q|find|lookup)([^a-z]|$)/.test(hay);
    }

    function isRich(el) {
        return !!el.isContentEditable && el.tagName !== 'INPUT' && el.tagName !== 'TEXTAREA';
    }

    function targetKind(el) {
        if (!el) return 'unknown';
        if (isSearchLike(el)) return 'search';
        if (isRich(el) || (el.getAttribute('role') === 'textbox' && el.tagName !== 'INPUT' && el.tagName !== 'TEXTAREA')) return 'rich';
        if (el.tagName === 'TEXTAREA') return 'textarea';
        if (el.tagName === 'INPUT') return 'input';
        return 'unknown';
    }

    function valueLength(el) {
        if (el.tagName === 'INPUT' || el.tagName === 'TEXTAREA') return String(el.value || '').length;
        return norm(el.innerText || el.textContent).length;
    }

    function resolveSelector(selector) {
        try {
            return { el: document.querySelector(selector), extended: false };
        } catch (e) {
            // CSS engine rejected it; try the :has-text("...") / :contains("...") extension.
            const m = /^(.*?):(?:has-text|contains)\((['"])(.*)\2\)\s*$/.exec(selector);
            if (!m) return { error: 'invalid_selector', message: String(e && e.message || e) };
            const base = norm(m[1]) || '*';
            const needle = norm(m[3]).toLowerCase();
            let pool;
            try { pool = Array.from(document.querySelectorAll(base)); }
            catch (e2) { return { error: 'invalid_selector', message: String(e2 && e2.message || e2) }; }
            const hits = pool.filter(el => isVisible(el) && norm(el.innerText || el.textContent).toLowerCase().includes(needle));
            hits.sort((a, b) => norm(a.innerText || a.textContent).length - norm(b.innerText || b.textContent).length);
            return { el: hits[0] || null, extended: true };
        }
    }

    function describe(el) {
        return { tag: el.tagName.toLowerCase(), role: roleOf(el), label: getLabel(el), text: textOf(el), selector: buildSelector(el) };
    }
""".replace("__MAX_HOPS__", str(MAX_ANCESTOR_HOPS))


def _script(body: str) -> str:
    return "(arg) => {\n" + _HELPERS + "\n" + body + "\n}"


# ---------------------------------------------------------------------------
# Observation
# ---------------------------------------------------------------------------

OBSERVE_JS = _script(r"""
    const limits = arg || {};
    const modal = findActiveModal();
    const inModal = (el) => !!(modal && modal.contains(el));

    const interactive = [];
    const seen = new Set();
    for (const el of document.querySelectorAll(CLICKABLE_SELECTOR)) {
        if (seen.has(el) || !isVisible(el) || isEditable(el)) continue;
        seen.add(el);
        interactive.push({
            role: roleOf(el), text: textOf(el), label: getLabel(el),
            selector: buildSelector(el), tag: el.tagName.toLowerCase(), in_modal: inModal(el),
        });
    }
    // Elements inside the active modal first, document order otherwise.
    interactive.sort((a, b) => Number(b.in_modal) - Number(a.in_modal));

    const editable = [];
    for (const el of document.querySelectorAll(EDITABLE_SELECTOR)) {
        if (!isVisible(el) || !isEditable(el)) continue;
        editable.push({
            selector: buildSelector(el), tag: el.tagName.toLowerCase(),
            kind: el.tagName === 'INPUT' ? (el.type || 'text').toLowerCase() : (isRich(el) ? 'contenteditable' : roleOf(el)),
            label: getLabel(el), placeholder: clip(el.placeholder || '', 80),
            value_length: valueLength(el), search_like: isSearchLike(el), rich: isRich(el),
            focused: document.activeElement === el, in_modal: inModal(el),
        });
    }
    editable.sort((a, b) => Number(b.in_modal) - Number(a.in_modal));

    const controls = [];
    const controlSelector = 'input[type="checkbox"], input[type="radio"], select, [role="checkbox"], [role="radio"], [role="switch"], [role="option"][aria-selected]';
    for (const el of document.querySelectorAll(controlSelector)) {
        if (controls.length >= limits.maxRawControls) break;
        const role = roleOf(el);
        const checked = el.tagName === 'INPUT' ? !!el.checked
            : (el.getAttribute('aria-checked') === 'true' || el.getAttribute('aria-selected') === 'true');
        controls.push({
            kind: el.tagName === 'SELECT' ? 'select' : role,
            checked,
            group: el.name || (el.closest('[role="radiogroup"], fieldset') ? getLabel(el.closest('[role="radiogroup"], fieldset')) : ''),
            label: getLabel(el) || textOf(el),
            selector: buildSelector(el),
            value: el.tagName === 'SELECT' ? String(el.value || '') : '',
            visible: isVisible(el),
        });
    }

    let modalSummary = null;
    if (modal) {
        const heading = modal.querySelector('h1, h2, h3, [role="heading"], .modal-title');
        modalSummary = {
            title: clip((heading && heading.textContent) || modal.getAttribute('aria-label') || '', 160),
            text: clip(modal.innerText || modal.textContent, 600),
            interactive_count: Array.from(modal.querySelectorAll(CLICKABLE_SELECTOR)).filter(isVisible).length,
            selector: buildSelector(modal),
        };
    }

    const active = document.activeElement;
    const focused = active && active !== document.body && active !== document.documentElement
        ? { tag: active.tagName.toLowerCase(), role: roleOf(active), label: getLabel(active) || textOf(active) }
        : null;

    const bodyText = document.body ? (document.body.innerText || '') : '';
    return {
        url: location.href,
        title: document.title || '',
        text: norm(bodyText).slice(0, limits.maxText),
        interactive: interactive.slice(0, limits.maxInteractive),
        editable: editable.slice(0, limits.maxEditable),
        controls,
        modal: modalSummary,
        focused,
    };
""")


# ---------------------------------------------------------------------------
# Click
# ---------------------------------------------------------------------------

CLICK_JS = _script(r"""
    const modal = findActiveModal();
    let target = null;
    let mode = '';

    if (arg.selector) {
        const res = resolveSelector(arg.selector);
        if (res.error) return { ok: false, code: 'invalid_selector', message: `Invalid selector ${arg.selector}: ${res.message}` };
        if (!res.el) return { ok: false, code: 'not_found', message: `No element matches selector ${arg.selector}` };
        if (modal && !modal.contains(res.el)) {
            return { ok: false, code: 'outside_modal', message: `Element ${arg.selector} is outside the active modal` };
        }
        target = res.el;
        mode = res.extended ? 'text_predicate' : 'selector';
    } else {
        const needle = norm(arg.text).toLowerCase();
        if (!needle) return { ok: false, code: 'not_found', message: 'Empty click text' };
        const root = modal || document.body || document.documentElement;
        const ranked = [];
        const nodes = root.querySelectorAll('*');
        for (const el of nodes) {
            if (!isVisible(el)) continue;
            const own = norm(el.innerText || el.textContent || '').toLowerCase();
            const aria = norm(el.getAttribute('aria-label') || el.value || el.title || '').toLowerCase();
            let exact = own === needle || aria === needle;
            let partial = exact || own.includes(needle) || (aria && aria.includes(needle));
            if (!partial) continue;
            // Skip containers whose child also matches; the deepest match is the text holder.
            if (!exact && Array.from(el.children).some(c => norm(c.innerText || c.textContent).toLowerCase().includes(needle))) continue;
            const anc = clickableAncestor(el);
            if (!anc) continue;
            ranked.push({ el: anc.el, exact: exact ? 0 : 1, hops: anc.hops, len: own.length });
        }
        if (!ranked.length) {
            const where = modal ? ' inside the active modal' : '';
            return { ok: false, code: 'not_found', message: `No clickable element with text "${arg.text}"${where}` };
        }
        ranked.sort((a, b) => (a.exact - b.exact) || (a.hops - b.hops) || (a.len - b.len));
        target = ranked[0].el;
        mode = ranked[0].exact === 0 ? 'text_exact' : 'text_partial';
    }

    target.scrollIntoView({ block: 'center', inline: 'center' });
    const rect = target.getBoundingClientRect();
    const opts = {
        bubbles: true, cancelable: true, composed: true, view: window, button: 0,
        clientX: rect.left + rect.width / 2, clientY: rect.top + rect.height / 2,
    };
    const fire = (Ctor, type) => {
        try { target.dispatchEvent(new Ctor(type, opts)); } catch (e) { target.dispatchEvent(new MouseEvent(type, opts)); }
    };
    fire(PointerEvent, 'pointerdown');
    fire(MouseEvent, 'mousedown');
    fire(PointerEvent, 'pointerup');
    fire(MouseEvent, 'mouseup');
    if (typeof target.click === 'function') target.click();
    else fire(MouseEvent, 'click');
    return { ok: true, mode, target: describe(target), in_modal: !!(modal && modal.contains(target)) };
""")


# ---------------------------------------------------------------------------
# Typing
# ---------------------------------------------------------------------------

EDITABLE_CANDIDATES_JS = _script(r"""
    const out = [];
    for (const el of document.querySelectorAll(EDITABLE_SELECTOR)) {
        if (!isVisible(el) || !isEditable(el)) continue;
        out.push({
            selector: buildSelector(el), kind: targetKind(el), search_like: isSearchLike(el), rich: isRich(el),
            focused: document.activeElement === el || el.contains(document.activeElement),
            label: getLabel(el),
        });
        if (out.length >= 40) break;
    }
    return out;
""")

TYPE_JS = _script(r"""
    let el = null;
    if (arg.selector) {
        const res = resolveSelector(arg.selector);
        if (res.error) return { ok: false, code: 'invalid_selector', message: `Invalid selector ${arg.selector}: ${res.message}` };
        el = res.el;
    }
    if (!el) return { ok: false, code: 'not_found', message: `No editable element matches selector ${arg.selector}` };
    if (!isEditable(el)) {
        const inner = el.querySelector && el.querySelector(EDITABLE_SELECTOR);
        if (inner && isEditable(inner)) el = inner;
        else return { ok: false, code: 'not_editable', message: `Element ${arg.selector} is not editable` };
    }
    const kind = targetKind(el);
    const text = String(arg.text || '');
    if (kind === 'search' && text.length > __LONG_TEXT__) {
        return {
            ok: false, code: 'search_field_guard', target_kind: kind,
            message: `Refusing to type ${text.length} characters into search-like field ${arg.selector}`,
        };
    }

    el.scrollIntoView({ block: 'center' });
    el.focus();
    let mode = 'value';
    if (el.tagName === 'INPUT' || el.tagName === 'TEXTAREA') {
        const proto = el.tagName === 'INPUT' ? window.HTMLInputElement.prototype : window.HTMLTextAreaElement.prototype;
        const setter = Object.getOwnPropertyDescriptor(proto, 'value');
        if (setter && setter.set) setter.set.call(el, text);
        else el.value = text;
        el.dispatchEvent(new Event('input', { bubbles: true }));
        el.dispatchEvent(new Event('change', { bubbles: true }));
    } else {
        mode = 'insert_text';
        const sel = window.getSelection();
        const range = document.createRange();
        range.selectNodeContents(el);
        sel.removeAllRanges();
        sel.addRange(range);
        let inserted = false;
        try { inserted = document.execCommand('insertText', false, text); } catch (e) { inserted = false; }
        if (!inserted || !norm(el.innerText || el.textContent).includes(norm(text).slice(0, 40))) {
            mode = 'replace_content';
            el.textContent = text;
            el.dispatchEvent(new InputEvent('input', { bubbles: true, data: text, inputType: 'insertText' }));
        }
    }
    return {
        ok: true, mode, target_kind: kind, search_like: kind === 'search',
        text_length: text.length, value_length: valueLength(el), target: describe(el),
    };
""".replace("__LONG_TEXT__", str(LONG_TEXT_CHARS)))


# ---------------------------------------------------------------------------
# Modal dismissal
# ---------------------------------------------------------------------------

CLOSE_MODAL_JS = _script(r"""
    const modal = findActiveModal();
    if (!modal) return { ok: false, code: 'no_modal', message: 'No active modal to close' };
    const words = /^(close|cancel|done|ok|okay|dismiss|got it|no thanks|not now|skip|×|x|✕)$/i;
    const candidates = Array.from(modal.querySelectorAll(CLICKABLE_SELECTOR)).filter(isVisible);
    let btn = candidates.find(el => words.test(norm(el.getAttribute('aria-label') || '')))
        || candidates.find(el => words.test(norm(el.innerText || el.textContent || el.value || '')))
        || candidates.find(el => /close|dismiss/i.test(String(el.className || '') + ' ' + (el.getAttribute('data-dismiss') || '')));
    if (btn) {
        btn.scrollIntoView({ block: 'center' });
        btn.click();
        return { ok: true, mode: 'close_button', target: describe(btn) };
    }
    const opts = { key: 'Escape', code: 'Escape', keyCode: 27, which: 27, bubbles: true, cancelable: true };
    const sink = document.activeElement || document.body;
    sink.dispatchEvent(new KeyboardEvent('keydown', opts));
    sink.dispatchEvent(new KeyboardEvent('keyup', opts));
    return { ok: true, mode: 'escape' };
""")
