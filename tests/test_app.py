"""
Tests for the urwid shell: keys and mouse events travel through the real
widget tree (Frame -> Columns -> ...) before reaching the session.
"""
from lazylog import Category, Collector, LogApp, Session, TailController, IdentityContext


SIZE = (120, 40)


class StaticCollector(Collector):

    def __init__(self, category, sources):
        self.category = category
        self.sources  = sources

    def list_available(self):
        return sorted(self.sources)

    def fetch(self, source_id, tail_depth):
        return self.sources[source_id][-tail_depth:]


def _app():
    sources = {
        Category.JOURNAL:   {'a.service': [f'a{i}' for i in range(100)],
                             'b.service': ['b1', 'b2']},
        Category.FILE:      {'/var/log/syslog': ['s1']},
        Category.CONTAINER: {},
        Category.EVENT:     {},
    }
    ctls = {cat: TailController(StaticCollector(cat, srcs), IdentityContext(),
                                tick_interval=None, spawn=lambda job: job())
            for cat, srcs in sources.items()}
    session = Session(ctls)
    session.drain()
    app = LogApp(session)
    app.frame.render(SIZE, focus=True)
    return app


def _press(app, key):
    # What MainLoop does: the widget tree first, unhandled_input with the rest.
    unhandled = app.frame.keypress(SIZE, key)
    if unhandled:
        app.handle_input(unhandled)
    app.on_wake(b'x')
    app.frame.render(SIZE, focus=True)
    return unhandled


def _raws(app):
    return [l.raw for l in app.session.active.current_window().lines]


class TestKeyRouting:

    def test_arrows_are_not_consumed_by_the_widgets(self):
        app = _app()
        for key in ('left', 'right', 'up', 'down', 'page up', 'page down', 'enter'):
            assert app.frame.keypress(SIZE, key) == key
        assert app._body_cols.focus_position == 1

    def test_left_and_right_switch_sources(self):
        app = _app()
        assert _press(app, 'right') == 'right'
        assert app.session.active.source_id == 'b.service'
        assert _raws(app) == ['b1', 'b2']

        assert _press(app, 'left') == 'left'
        assert app.session.active.source_id == 'a.service'
        assert _raws(app)[-1] == 'a99'
        assert app._body_cols.focus_position == 1

    def test_down_scrolls_the_log_not_the_list(self):
        app = _app()
        _press(app, 'enter')
        ctl = app.session.active
        assert ctl.source_id == 'a.service'
        _press(app, 'g')
        assert ctl.view.scroll_offset == 0
        _press(app, 'down')
        _press(app, 'down')
        assert ctl.view.scroll_offset == 2
        assert _raws(app)[0] == 'a2'
        assert ctl.view.selected_index == 0

    def test_tab_changes_category(self):
        app = _app()
        _press(app, 'tab')
        assert app.session.category is Category.FILE
        _press(app, 'right')
        assert _raws(app) == ['s1']


class TestMouse:

    def test_click_on_name_loads_it_without_taking_focus(self):
        app = _app()
        top = app.w_header.rows((SIZE[0],))
        # body row 0 is the box border, the names start below it
        assert app.frame.mouse_event(SIZE, 'mouse press', 1, 3, top + 2, True)
        app.on_wake(b'x')
        assert app.session.active.source_id == 'b.service'
        assert app.session.active.view.selected_index == 1
        assert app._body_cols.focus_position == 1
        assert app.frame.keypress(SIZE, 'left') == 'left'
