"""
User script injected into every section the rendering surface loads.

It lays the body out in viewport-sized columns, forwards touch events to the
host, and defines the movePage()/position()/scaleText() entry points the
pagination service calls.
"""

from folio.models.navigation_types import TouchEventKind
from folio.models.reader_settings import ReaderSettings

USER_SCRIPT_TEMPLATE = """
function postMessage(name, info) {
    let host = window.folioHost;
    if (typeof host === 'undefined') {
        console.log("message host is not set for: " + name);
    } else {
        // round-trip info so only plain JSON reaches the host
        host.post(name, JSON.parse(JSON.stringify(info)));
    }
};

function log(msg) {
    postMessage('__LOG__', { 'message' : msg });
};

log("start user script");

function touchEvent(event) {
    // touchend doesn't have touches element
    let touch = (event.touches && event.touches[0]) || event;

    return {
        'identifier': touch.identifier,
        'pageX': event.pageX,
        'pageY': event.pageY,
        'clientX': touch.clientX,
        'clientY': touch.clientY,
        'screenX': touch.screenX,
        'screenY': touch.screenY,
        'clientWidth': document.documentElement.clientWidth,
        'clientHeight': document.documentElement.clientHeight,
        'selectionCount': window.getSelection().rangeCount,
    };
};

[__EVENTS__].forEach(function(name) {
    window.addEventListener(name, function(event) {
        postMessage(name, touchEvent(event));
    }, false);
});

var meta = document.createElement('meta');
meta.name = 'viewport';
meta.content = 'user-scalable=no';
document.getElementsByTagName('head')[0].appendChild(meta);

var bs = document.body.style;
bs.overflowX = '__OVERFLOW_X__';
bs.overflowY = 'hidden';
bs.height = '96vh';
bs.columnWidth = '100vh';
bs.webkitLineBoxContain = 'block glyphs replaced';
bs.marginTop = '__VMARGIN__px';
bs.marginBottom = '__VMARGIN__px';
bs.marginLeft = '__HMARGIN__px';
bs.marginRight = '__HMARGIN__px';
bs.columnGap = '__COLUMN_GAP__px';
bs.overflowWrap = 'break-word';
bs.hyphens = 'auto';
// webkitHyphens is also needed or else pages won't hyphenate
bs.webkitHyphens = 'auto';

function currentPosition(pos) {
    let element = document.documentElement;
    let totalWidth = element.scrollWidth;
    let screenWidth = element.clientWidth;

    var p = 0.0;
    if (pos < 0.0) {
        p = -1; // less than zero indicates before beginning
    } else if (pos > (totalWidth - (screenWidth / 2.0))) {
        p = 1.1; // more than one indicates past end
    } else {
        p = Math.max(0.0, Math.min(1.0, pos / totalWidth));
    }

    return { "pos": p, "x": window.scrollX, "y": window.scrollY, "width": totalWidth, "height": element.scrollHeight };
};

// navigate one page in a book section, snapping to column bounds
// direction: -1 for previous page, +1 for next page, 0 to simply snap to bounds
// returns: the position (0.0-1.0) in the current section, -1 before the section, 1.1 past it
function movePage(direction, smooth) {
    let element = document.documentElement;
    let totalWidth = element.scrollWidth;
    let screenWidth = element.clientWidth;
    let pos = Math.min(totalWidth, window.scrollX + (screenWidth * direction));
    let adjust = (pos % screenWidth);
    pos -= adjust;
    if (adjust > (screenWidth / 2.0)) {
        pos += screenWidth;
    }

    window.scrollTo({ 'left': pos, 'behavior': smooth == true ? 'smooth' : 'instant' });
    return currentPosition(pos);
};

// with no argument, returns the current position;
// with an argument, jumps to the given fraction and snaps to the nearest page
function position(amount) {
    if (typeof amount === 'number') {
        let pos = document.documentElement.scrollWidth * amount;
        window.scrollTo({ 'left': pos, 'behavior': 'instant' });
        return movePage(0, false);
    }
    return currentPosition(window.scrollX);
};

// scales the root font size, returning the applied size as a percentage
function scaleText(amount) {
    let style = document.documentElement.style;
    style.fontSize = Math.round(amount * 100) + '%';
    return style.fontSize;
};

scaleText(__PAGE_SCALE__); // initial scaling

window.onresize = function() {
    movePage(0, false); // snap to the nearest page boundary
};

log("complete user script");
"""


def build_user_script(settings: ReaderSettings) -> str:
    """Render the user script for the given reader settings."""
    events = ", ".join(
        f"'{kind.value}'" for kind in TouchEventKind if kind != TouchEventKind.LOG
    )
    replacements = {
        "__LOG__": TouchEventKind.LOG.value,
        "__EVENTS__": events,
        "__OVERFLOW_X__": settings.overflow_x,
        "__VMARGIN__": str(settings.vmargin),
        "__HMARGIN__": str(settings.hmargin),
        "__COLUMN_GAP__": str(settings.hmargin * 2),
        "__PAGE_SCALE__": repr(float(settings.page_scale)),
    }
    script = USER_SCRIPT_TEMPLATE
    for marker, value in replacements.items():
        script = script.replace(marker, value)
    return script
