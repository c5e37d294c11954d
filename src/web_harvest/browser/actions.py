"""
In-page scripts and common browser actions.

Every snippet evaluated in the page lives here as a module constant, so
the rest of the package only calls these helpers. Helpers translate
driver failures into the package's exception types.
"""

from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from web_harvest.core.exceptions import HarvestError, InteractionError, SessionLostError
from web_harvest.utils.logging import get_logger

logger = get_logger(__name__)

# Name of the binding the mutation observer reports to
MUTATION_BINDING = "__webHarvestMutations"

# Marks clicked activators so they are not reported again
ACTIVATED_ATTR = "data-harvest-activated"

MUTATION_OBSERVER_JS = """
(() => {
    if (window.__webHarvestObserverInstalled) return;
    window.__webHarvestObserverInstalled = true;

    const SELECTOR = 'a[href], img, source, video, audio, iframe, track';
    let queue = [];
    let scheduled = false;

    const flush = () => {
        scheduled = false;
        const batch = queue;
        queue = [];
        if (batch.length && typeof window.__webHarvestMutations === 'function') {
            window.__webHarvestMutations(batch);
        }
    };

    const start = () => {
        const observer = new MutationObserver((mutations) => {
            for (const mutation of mutations) {
                for (const node of mutation.addedNodes) {
                    if (node.nodeType !== 1) continue;
                    const size = (node.outerHTML || '').length;
                    const matches = node.matches(SELECTOR) ? [node] : [];
                    if (node.querySelectorAll) matches.push(...node.querySelectorAll(SELECTOR));
                    if (!matches.length) {
                        queue.push({tag: node.tagName.toLowerCase(), url: null, size: size});
                        continue;
                    }
                    matches.forEach((el, i) => queue.push({
                        tag: el.tagName.toLowerCase(),
                        url: el.currentSrc || el.src || el.href || null,
                        size: i === 0 ? size : 0
                    }));
                }
            }
            if (queue.length && !scheduled) {
                scheduled = true;
                setTimeout(flush, 50);
            }
        });
        observer.observe(document.documentElement, {childList: true, subtree: true});
    };

    if (document.documentElement) start();
    else document.addEventListener('DOMContentLoaded', start);
})();
"""

PAGE_SIGNALS_JS = """
() => {
    let nextId = Number(window.__webHarvestNextId || 0);
    const selectorFor = (el) => {
        if (!el.hasAttribute('data-harvest-id')) {
            el.setAttribute('data-harvest-id', String(nextId++));
        }
        return `[data-harvest-id="${el.getAttribute('data-harvest-id')}"]`;
    };
    const visible = (el) => {
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        return rect.width > 0 && rect.height > 0 &&
            style.visibility !== 'hidden' && style.display !== 'none';
    };
    const label = (el) => ((el.innerText || el.textContent || '') + ' ' +
        (el.getAttribute('aria-label') || '') + ' ' + (el.className || '')).toLowerCase();

    const pagination = [];
    const sentinels = [];
    const activators = [];
    const seen = new Set();

    document.querySelectorAll('a[rel="next"], [aria-label*="next" i], .pagination a, .pager a, nav[aria-label*="pagination" i] a')
        .forEach(el => {
            if (!visible(el) || seen.has(el)) return;
            const text = label(el);
            if (el.getAttribute('rel') === 'next' || /next|more|›|»|older/.test(text)) {
                seen.add(el);
                pagination.push(selectorFor(el));
            }
        });

    document.querySelectorAll('button, a, [role="button"]').forEach(el => {
        if (!visible(el) || seen.has(el)) return;
        if (/load more|show more|view more|see more|infinite/.test(label(el))) {
            seen.add(el);
            sentinels.push(selectorFor(el));
        }
    });

    document.querySelectorAll('a[href^="#"], a[href^="javascript:"], button, [aria-expanded="false"], summary')
        .forEach(el => {
            if (!visible(el) || seen.has(el)) return;
            if (el.hasAttribute('data-harvest-activated')) return;
            if (el.closest('form') && el.getAttribute('type') === 'submit') return;
            seen.add(el);
            activators.push(selectorFor(el));
        });

    window.__webHarvestNextId = nextId;

    const iframes = Array.from(document.querySelectorAll('iframe[src]'))
        .map(f => f.src)
        .filter(src => /^https?:/.test(src));

    const body = document.body;
    return {
        counts: {
            elements: document.getElementsByTagName('*').length,
            links: document.links.length,
            images: document.images.length,
            media: document.querySelectorAll('video, audio').length
        },
        textLength: body ? (body.innerText || '').length : 0,
        domSize: document.documentElement.outerHTML.length,
        scrollY: Math.round(window.scrollY),
        viewportHeight: window.innerHeight,
        documentHeight: document.documentElement.scrollHeight,
        pagination: pagination.slice(0, 5),
        sentinels: sentinels.slice(0, 5),
        activators: activators.slice(0, 20),
        iframes: iframes
    };
}
"""

COLLECT_DISCOVERIES_JS = """
() => {
    const clip = (s, n) => (s || '').replace(/\\s+/g, ' ').trim().slice(0, n);
    const links = Array.from(document.querySelectorAll('a[href]')).map(a => ({
        url: a.href,
        text: clip(a.innerText || a.textContent, 200),
        title: a.getAttribute('title') || '',
        rel: a.getAttribute('rel') || ''
    }));
    const images = Array.from(document.images).map(img => ({
        url: img.currentSrc || img.src,
        alt: img.getAttribute('alt') || ''
    }));
    const videos = [];
    document.querySelectorAll('video').forEach(v => {
        if (v.currentSrc || v.src) videos.push({url: v.currentSrc || v.src, poster: v.poster || ''});
        v.querySelectorAll('source[src]').forEach(s => videos.push({url: s.src, poster: v.poster || ''}));
    });
    const audio = [];
    document.querySelectorAll('audio').forEach(a => {
        if (a.currentSrc || a.src) audio.push({url: a.currentSrc || a.src});
        a.querySelectorAll('source[src]').forEach(s => audio.push({url: s.src}));
    });
    const iframes = Array.from(document.querySelectorAll('iframe[src]')).map(f => ({url: f.src}));
    return {links, images, videos, audio, iframes};
}
"""

COLLECT_MEDIA_JS = """
(includeBackgrounds) => {
    const items = [];
    const abs = (u) => { try { return new URL(u, document.baseURI).href; } catch (e) { return null; } };
    const push = (url, type, extra) => {
        const resolved = url ? abs(url) : null;
        if (resolved) items.push(Object.assign({url: resolved, type: type}, extra || {}));
    };
    const context = (el) => ({
        inHeader: !!el.closest('header, .hero, [class*="hero"], [class*="banner"]'),
        inGallery: !!el.closest('[class*="gallery"], [class*="carousel"], [class*="slider"], figure'),
        inNav: !!el.closest('nav, footer')
    });
    const caption = (el) => {
        const fig = el.closest('figure');
        const cap = fig ? fig.querySelector('figcaption') : null;
        return cap ? (cap.textContent || '').trim().slice(0, 300) : '';
    };
    const LAZY = ['data-src', 'data-lazy-src', 'data-original', 'data-lazy', 'data-url', 'data-full'];

    document.querySelectorAll('img').forEach(img => {
        const extra = Object.assign({
            alt: img.getAttribute('alt') || '',
            title: img.getAttribute('title') || '',
            width: img.naturalWidth || img.width || 0,
            height: img.naturalHeight || img.height || 0,
            caption: caption(img)
        }, context(img));
        push(img.currentSrc || img.src, 'image', extra);
        LAZY.forEach(attr => { if (img.getAttribute(attr)) push(img.getAttribute(attr), 'image', extra); });
        const srcset = img.getAttribute('srcset') || img.getAttribute('data-srcset') || '';
        srcset.split(',').forEach(part => {
            const candidate = part.trim().split(/\\s+/)[0];
            if (candidate) push(candidate, 'image', Object.assign({srcset: true}, extra));
        });
    });

    document.querySelectorAll('picture source[srcset]').forEach(source => {
        source.getAttribute('srcset').split(',').forEach(part => {
            const candidate = part.trim().split(/\\s+/)[0];
            if (candidate) push(candidate, 'image', Object.assign({srcset: true}, context(source)));
        });
    });

    document.querySelectorAll('video').forEach(v => {
        const extra = Object.assign({
            width: v.videoWidth || v.width || 0,
            height: v.videoHeight || v.height || 0,
            duration: isFinite(v.duration) ? v.duration : null
        }, context(v));
        push(v.currentSrc || v.src, 'video', extra);
        v.querySelectorAll('source[src]').forEach(s => push(s.src, 'video',
            Object.assign({mimeType: s.type || ''}, extra)));
        if (v.poster) push(v.poster, 'image', Object.assign({poster: true}, context(v)));
    });

    document.querySelectorAll('audio').forEach(a => {
        push(a.currentSrc || a.src, 'audio', {});
        a.querySelectorAll('source[src]').forEach(s => push(s.src, 'audio', {mimeType: s.type || ''}));
    });

    document.querySelectorAll('meta[property="og:image"], meta[property="og:image:url"], meta[name="twitter:image"], meta[name="twitter:image:src"]')
        .forEach(m => push(m.getAttribute('content'), 'image', {social: true}));
    document.querySelectorAll('meta[property="og:video"], meta[property="og:video:url"]')
        .forEach(m => push(m.getAttribute('content'), 'video', {social: true}));
    document.querySelectorAll('link[rel~="icon"], link[rel="apple-touch-icon"]')
        .forEach(l => push(l.getAttribute('href'), 'image', {icon: true}));

    const walkLd = (node) => {
        if (!node || typeof node !== 'object') return;
        if (Array.isArray(node)) { node.forEach(walkLd); return; }
        ['image', 'thumbnailUrl', 'contentUrl', 'logo'].forEach(key => {
            const value = node[key];
            if (typeof value === 'string') push(value, key === 'contentUrl' && /video/i.test(node['@type'] || '') ? 'video' : 'image', {jsonLd: true});
            else if (value && typeof value === 'object') {
                if (typeof value.url === 'string') push(value.url, 'image', {jsonLd: true});
                else walkLd(value);
            }
        });
        Object.values(node).forEach(v => { if (v && typeof v === 'object') walkLd(v); });
    };
    document.querySelectorAll('script[type="application/ld+json"]').forEach(s => {
        try { walkLd(JSON.parse(s.textContent)); } catch (e) {}
    });

    if (includeBackgrounds) {
        document.querySelectorAll('body *').forEach(el => {
            const bg = window.getComputedStyle(el).backgroundImage;
            if (!bg || bg === 'none') return;
            const re = /url\\(["']?([^"')]+)["']?\\)/g;
            let m;
            while ((m = re.exec(bg)) !== null) {
                if (!m[1].startsWith('data:')) push(m[1], 'image', Object.assign({background: true}, context(el)));
            }
        });
    }

    return items;
}
"""

SCAN_VIDEO_ELEMENTS_JS = """
(scanShadow) => {
    const found = [];
    const visit = (root) => {
        root.querySelectorAll('video, audio').forEach(media => {
            const kind = media.tagName.toLowerCase();
            if (media.currentSrc || media.src) found.push({url: media.currentSrc || media.src, kind: kind, source: 'element'});
            media.querySelectorAll('source[src]').forEach(s => found.push({url: s.src, kind: kind, source: 'element', mimeType: s.type || ''}));
            media.querySelectorAll('track[src]').forEach(t => found.push({
                url: t.src, kind: 'subtitle', source: 'track',
                language: t.srclang || '', label: t.label || ''
            }));
            if (media.poster) found.push({url: media.poster, kind: 'poster', source: 'element'});
        });
        if (!scanShadow) return;
        root.querySelectorAll('*').forEach(el => { if (el.shadowRoot) visit(el.shadowRoot); });
    };
    visit(document);
    return found;
}
"""

SCROLL_BY_JS = """
(amount) => {
    window.scrollBy(0, amount);
    return {
        scrollY: Math.round(window.scrollY),
        documentHeight: document.documentElement.scrollHeight,
        viewportHeight: window.innerHeight
    };
}
"""

RESOLVE_HREF_JS = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return null;
    const anchor = el.closest('a[href]');
    return anchor ? anchor.href : null;
}
"""

MARK_ACTIVATED_JS = """
(selector) => {
    const el = document.querySelector(selector);
    if (el) el.setAttribute('data-harvest-activated', '1');
    return !!el;
}
"""

_SESSION_LOST_MARKERS = (
    "target closed",
    "target page, context or browser has been closed",
    "browser has been closed",
    "has been closed",
    "browser has disconnected",
)


def classify_driver_error(error: Exception, selector: str | None = None) -> HarvestError:
    """
    Map a Playwright failure to SessionLostError or InteractionError.

    Args:
        error: Exception raised by the driver
        selector: Selector involved, if any

    Returns:
        The package exception to raise in its place
    """
    if isinstance(error, HarvestError):
        return error

    message = str(error)
    if any(marker in message.lower() for marker in _SESSION_LOST_MARKERS):
        return SessionLostError(f"Browser session lost: {message}")

    return InteractionError(f"Interaction failed: {message}", selector=selector)


async def evaluate(page: Page, script: str, arg: Any = None, selector: str | None = None) -> Any:
    """Evaluate a snippet, translating driver errors."""
    try:
        if arg is None:
            return await page.evaluate(script)
        return await page.evaluate(script, arg)
    except PlaywrightError as e:
        raise classify_driver_error(e, selector) from e


async def collect_page_signals(page: Page) -> dict[str, Any]:
    """Raw signals snapshot consumed by PageSignals.from_dict()."""
    return await evaluate(page, PAGE_SIGNALS_JS) or {}


async def collect_discoveries(page: Page) -> dict[str, list[dict[str, Any]]]:
    """Links, images, videos, audio and iframes currently in the DOM."""
    data = await evaluate(page, COLLECT_DISCOVERIES_JS) or {}
    return {key: list(data.get(key) or []) for key in ("links", "images", "videos", "audio", "iframes")}


async def collect_media(page: Page, include_backgrounds: bool = True) -> list[dict[str, Any]]:
    """Detailed media candidates (see COLLECT_MEDIA_JS)."""
    return list(await evaluate(page, COLLECT_MEDIA_JS, include_backgrounds) or [])


async def scan_video_elements(page: Page, scan_shadow_dom: bool = True) -> list[dict[str, Any]]:
    """Video/audio sources, tracks and posters, optionally inside open shadow roots."""
    return list(await evaluate(page, SCAN_VIDEO_ELEMENTS_JS, scan_shadow_dom) or [])


async def scroll_by(page: Page, amount: int) -> dict[str, int]:
    """
    Scroll the window down.

    Returns:
        Dict with scrollY, documentHeight and viewportHeight after the scroll
    """
    return await evaluate(page, SCROLL_BY_JS, amount) or {}


async def resolve_href(page: Page, selector: str) -> str | None:
    """Absolute href the element (or its enclosing anchor) would navigate to."""
    return await evaluate(page, RESOLVE_HREF_JS, selector, selector=selector)


async def mark_activated(page: Page, selector: str) -> bool:
    return bool(await evaluate(page, MARK_ACTIVATED_JS, selector, selector=selector))


async def click(page: Page, selector: str, timeout_ms: int = 5000) -> None:
    """
    Click an element.

    Raises:
        InteractionError: If the element is missing or the click is intercepted
        SessionLostError: If the page went away
    """
    try:
        await page.click(selector, timeout=timeout_ms)
        logger.debug(f"Clicked element: {selector}")
    except PlaywrightError as e:
        raise classify_driver_error(e, selector) from e


async def hover(page: Page, selector: str, timeout_ms: int = 5000) -> None:
    """Hover over an element (errors as for click())."""
    try:
        await page.hover(selector, timeout=timeout_ms)
    except PlaywrightError as e:
        raise classify_driver_error(e, selector) from e
